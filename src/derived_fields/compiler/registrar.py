# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Registration of derived fields.

Scans every entity of the registry for derived fields and normalizes each
field's declared attributes, joins and order clauses into a typed
:class:`~derived_fields.model.requirements.RequirementSet`, validating every
reference against the registry.
"""

from __future__ import annotations

from derived_fields.compiler.errors import Diagnostic
from derived_fields.compiler.normalize import Normalizer
from derived_fields.model.requirements import RequirementSet
from derived_fields.model.schema import EntityDefinition, FieldDefinition, FieldKey, Registry

# ###############
# Public Interface
# ###############


def register(
    registry: Registry,
    entity: EntityDefinition,
    field_name: str,
    field_def: FieldDefinition,
) -> tuple[RequirementSet, list[Diagnostic]]:
    """Normalize and validate one derived field's declaration.

    Checks performed:
    - Every attribute is a string naming a field of *entity*.
    - Every join entry is an entity name, an entity definition or a mapping
      with a ``target``; the target entity exists; *entity* (or the
      enclosing join's entity) declares an association to it under the
      given alias. Nested joins are checked the same way.
    - Every structured order clause walks a valid association path and ends
      in a field of the entity the path resolves to. Raw string clauses are
      not checked.

    Args:
        registry: The registry used to resolve entities and associations.
        entity: The entity declaring the field.
        field_name: Name of the derived field.
        field_def: The field definition carrying the raw declarations.

    Returns:
        The normalized requirement set and the list of problems found. The
        requirement set is only meaningful when the list is empty.
    """
    normalizer = Normalizer(
        registry,
        f"derived field '{entity.name}.{field_name}'",
        entity=entity.name,
        field=field_name,
    )
    requirements = normalizer.requirements(field_def.attributes, field_def.joins, field_def.order, entity)
    return requirements, normalizer.diagnostics


def register_all(registry: Registry) -> tuple[dict[FieldKey, RequirementSet], list[Diagnostic]]:
    """Register every derived field of every entity in *registry*.

    Returns:
        The normalized requirement sets keyed by field, in declaration order,
        and every problem found across all fields.
    """
    requirements: dict[FieldKey, RequirementSet] = {}
    diagnostics: list[Diagnostic] = []
    for entity in registry.entities.values():
        for field_name, field_def in entity.fields.items():
            if not field_def.is_derived:
                continue
            requirement_set, problems = register(registry, entity, field_name, field_def)
            requirements[FieldKey(entity.name, field_name)] = requirement_set
            diagnostics.extend(problems)
    return requirements, diagnostics
