# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Transitive closure of derived field requirements.

Each derived field that reads another derived field absorbs that field's
requirement set, so that in the end every requirement set names base fields
and joins only. Fields are processed in dependency order, so every absorbed
set is already closed and a single pass suffices.
"""

from __future__ import annotations

from collections.abc import Mapping

from derived_fields.compiler.merge import merge_into
from derived_fields.model.requirements import Attribute, RequirementSet
from derived_fields.model.schema import FieldKey, Registry

# ###############
# Public Interface
# ###############


def close_requirements(
    requirements: Mapping[FieldKey, RequirementSet],
    registry: Registry,
    processing_order: list[FieldKey],
) -> None:
    """Inline derived field references into the referencing fields, in place.

    Args:
        requirements: Normalized requirement set of every derived field.
        registry: Registry used to tell base fields from derived ones.
        processing_order: Derived fields with every dependency listed before
            its dependents, as produced by
            :meth:`~derived_fields.compiler.graph.DependencyGraph.processing_order`.
    """
    for key in processing_order:
        inline_derived(requirements[key], key.entity, requirements, registry)


def inline_derived(
    target: RequirementSet,
    entity_name: str,
    requirements: Mapping[FieldKey, RequirementSet],
    registry: Registry,
) -> list[str]:
    """Replace derived attribute references of *target* by their requirement sets.

    Nested joins are handled the same way, scoped to the joined entity.

    Returns:
        The derived field names removed from *target*'s own attribute list.
    """
    entity = registry.lookup_entity(entity_name)
    inlined: list[str] = []
    if entity is not None and target.attributes is not None:
        kept: list[Attribute] = []
        for attribute in target.attributes:
            if isinstance(attribute, str) and entity.is_derived(attribute):
                if attribute not in inlined:
                    inlined.append(attribute)
            else:
                kept.append(attribute)
        target.attributes = kept
        for name in inlined:
            merge_into(target, requirements[FieldKey(entity_name, name)])

    for join in target.joins:
        inline_derived(join, join.target, requirements, registry)
    return inlined
