# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Per-request expansion of derived field references.

A request names attributes, joins and order clauses of an entity, possibly
including derived fields. Expansion replaces each derived field by its
closed requirement set, replaces order clauses on derived fields by their
inherited clauses, and reports what was injected so the caller can compute
the derived values and strip the helper data from the result.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from derived_fields.compiler.errors import Diagnostic, ErrorKind, RequestError
from derived_fields.compiler.merge import find_join, merge_into
from derived_fields.compiler.normalize import Normalizer
from derived_fields.compiler.order_inheritance import substitute_tree
from derived_fields.compiler.schema import ClosedSchema
from derived_fields.model.requirements import Attribute, OrderEntry, RequirementSet
from derived_fields.model.schema import EntityDefinition, FieldKey

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############


@dataclass(frozen=True)
class ExpansionOptions:
    """Options controlling request expansion.

    Attributes:
        active: When False, requests are normalized but derived fields are
            left alone and nothing is reported as injected.
    """

    active: bool = True


class MarkerKind(Enum):
    """What an injection marker refers to."""

    DERIVED_FIELD = "derived_field"
    ATTRIBUTE = "attribute"
    JOIN = "join"


@dataclass(frozen=True)
class InjectedMarker:
    """Something the expansion put into the request on behalf of a derived field.

    Attributes:
        kind: ``DERIVED_FIELD`` markers name fields whose value the caller must
            compute and assign; ``ATTRIBUTE`` and ``JOIN`` markers name helper
            data the caller did not ask for and must strip from the result.
        path: Join labels (alias, else target entity) leading from the root
            request to the level the marker applies to.
        name: Field name, or join label for ``JOIN`` markers.
    """

    kind: MarkerKind
    path: tuple[str, ...]
    name: str


@dataclass
class ExpansionResult:
    """A fully concrete request plus the markers of everything injected."""

    request: RequirementSet
    injected: list[InjectedMarker] = field(default_factory=list)

    def derived_fields(self, path: tuple[str, ...] = ()) -> list[str]:
        """Return the derived field names to compute at the join level *path*."""
        return [m.name for m in self.injected if m.kind is MarkerKind.DERIVED_FIELD and m.path == path]

    def markers(self, kind: MarkerKind) -> list[InjectedMarker]:
        return [m for m in self.injected if m.kind is kind]


def expand_request(
    schema: ClosedSchema,
    entity_name: str,
    request: RequirementSet | Mapping[str, Any] | None = None,
    *,
    options: ExpansionOptions | None = None,
) -> ExpansionResult:
    """Expand every derived field reference in *request*.

    Args:
        schema: The closed schema produced by
            :func:`~derived_fields.compiler.schema.initialize_schema`. It is
            only read.
        entity_name: Entity the request is made against.
        request: A :class:`RequirementSet` or a mapping with optional
            ``attributes``, ``joins`` (or ``include``) and ``order`` keys,
            in any of the shapes accepted for declarations. Other keys are
            carried through as options. A missing attribute list means
            "all fields". The caller's object is never modified.
        options: Expansion options.

    Returns:
        The expanded request and the injection markers.

    Raises:
        RequestError: If the request names an unknown entity, field or
            association, is malformed, or sorts by a derived field without
            order clauses.
    """
    options = options or ExpansionOptions()
    entity = schema.registry.lookup_entity(entity_name)
    if entity is None:
        raise RequestError(
            Diagnostic(
                kind=ErrorKind.UNKNOWN_ENTITY,
                message=f"Request refers to unknown entity '{entity_name}'",
                entity=entity_name,
            )
        )

    normalized = _normalize_request(schema, entity, request)
    if not options.active:
        return ExpansionResult(request=normalized)

    def _lookup(key: FieldKey) -> list[OrderEntry]:
        return schema.requirements[key].order

    # Merged-in requirement sets are closed already; only the caller's own
    # order clauses can still sort by a derived field.
    problems = substitute_tree(
        normalized, entity.name, schema.registry, _lookup, f"request on '{entity.name}'", keep_repeats=True
    )
    if problems:
        raise RequestError(problems[0])

    original = normalized.model_copy(deep=True)
    injected: list[InjectedMarker] = []
    _expand_fields(schema, normalized, entity, (), injected)

    _collect_helper_markers(original, normalized, (), injected)
    logger.debug(
        "Expanded request on '%s': %d derived field(s) injected",
        entity.name,
        sum(1 for m in injected if m.kind is MarkerKind.DERIVED_FIELD),
    )
    return ExpansionResult(request=normalized, injected=injected)


# ################
# Implementation
# ################

_REQUEST_KEYS = frozenset({"attributes", "joins", "include", "order"})


def _normalize_request(
    schema: ClosedSchema,
    entity: EntityDefinition,
    request: RequirementSet | Mapping[str, Any] | None,
) -> RequirementSet:
    """Normalize a request into a private, typed requirement set."""
    if request is None:
        request = {}
    if isinstance(request, RequirementSet):
        raw_attributes: Any = request.attributes
        raw_joins: Any = request.joins
        raw_order: Any = request.order
        extra = dict(request.options)
    elif isinstance(request, Mapping):
        raw_attributes = request.get("attributes")
        raw_joins = request.get("joins", request.get("include"))
        raw_order = request.get("order")
        extra = {key: value for key, value in request.items() if key not in _REQUEST_KEYS}
    else:
        raise TypeError(f"Request on '{entity.name}' must be a mapping, got {type(request).__name__}")

    normalizer = Normalizer(schema.registry, f"request on '{entity.name}'", entity=entity.name, request=True)
    normalized = normalizer.requirements(raw_attributes, raw_joins, raw_order, entity)
    if normalizer.diagnostics:
        raise RequestError(normalizer.diagnostics[0])
    normalized.options = copy.deepcopy(extra)
    return normalized


def _expand_fields(
    schema: ClosedSchema,
    request: RequirementSet,
    entity: EntityDefinition,
    path: tuple[str, ...],
    injected: list[InjectedMarker],
) -> None:
    """Merge the requirements of every requested derived field into *request*.

    Without an attribute list every field of the entity is loaded, so every
    derived field is expanded.
    """
    if request.attributes is None:
        derived = schema.derived_fields(entity.name)
    else:
        derived = []
        kept: list[Attribute] = []
        for attribute in request.attributes:
            if isinstance(attribute, str) and schema.is_derived(entity.name, attribute):
                if attribute not in derived:
                    derived.append(attribute)
            else:
                kept.append(attribute)
        request.attributes = kept

    for name in derived:
        merge_into(request, schema.requirements[FieldKey(entity.name, name)])
        injected.append(InjectedMarker(kind=MarkerKind.DERIVED_FIELD, path=path, name=name))

    for join in request.joins:
        target = schema.registry.lookup_entity(join.target)
        assert target is not None
        _expand_fields(schema, join, target, (*path, join.label), injected)


def _collect_helper_markers(
    original: RequirementSet,
    expanded: RequirementSet,
    path: tuple[str, ...],
    injected: list[InjectedMarker],
) -> None:
    """Record attributes and joins present in *expanded* but not asked for in *original*."""
    if original.attributes is not None and expanded.attributes is not None:
        for attribute in expanded.attributes:
            if isinstance(attribute, str) and attribute not in original.attributes:
                injected.append(InjectedMarker(kind=MarkerKind.ATTRIBUTE, path=path, name=attribute))

    for join in expanded.joins:
        requested = find_join(original.joins, join)
        if requested is None:
            injected.append(InjectedMarker(kind=MarkerKind.JOIN, path=path, name=join.label))
        else:
            _collect_helper_markers(requested, join, (*path, join.label), injected)
