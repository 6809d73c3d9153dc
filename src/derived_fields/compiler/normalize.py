# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Normalization of declared (or requested) requirement shapes.

Client code may write attributes, joins and order clauses in several loose
shapes: bare entity names, entity definitions, ``{"target": ..., "alias":
...}`` mappings, single entries instead of lists, order clauses without a
direction. The :class:`Normalizer` turns all of them into the typed models of
:mod:`derived_fields.model.requirements`, checking every attribute, entity
and association against the registry on the way.

Problems are collected as :class:`~derived_fields.compiler.errors.Diagnostic`
instances instead of being raised, so that one pass reports everything it
finds. An entry that fails to normalize is dropped from the result.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from derived_fields.compiler.errors import Diagnostic, ErrorKind
from derived_fields.compiler.merge import find_join, merge_into
from derived_fields.model.requirements import (
    Attribute,
    Direction,
    JoinSpec,
    JoinStep,
    OrderClause,
    OrderEntry,
    RawExpression,
    RawOrder,
    RequirementSet,
)
from derived_fields.model.schema import EntityDefinition, Registry

# ###############
# Public Interface
# ###############

JOIN_KEYS = frozenset({"target", "model", "alias", "as", "attributes", "joins", "include", "order"})


class Normalizer:
    """Normalizes requirement declarations for one subject.

    Args:
        registry: Registry used to resolve entity names and associations.
        subject: Human-readable subject used in messages, e.g.
            ``"derived field 'Task.Label'"`` or ``"request on 'Task'"``.
        entity: Entity name recorded on every diagnostic.
        field: Derived field name recorded on every diagnostic.
        request: In request mode a missing attribute list means "all
            fields" (None) instead of "no fields", raw attribute
            expressions are allowed, and order paths are resolved against
            the request's own join tree before the registry.
    """

    def __init__(
        self,
        registry: Registry,
        subject: str,
        *,
        entity: str | None = None,
        field: str | None = None,
        request: bool = False,
    ) -> None:
        self._registry = registry
        self._subject = subject
        self._entity = entity
        self._field = field
        self._request = request
        self.diagnostics: list[Diagnostic] = []

    def requirements(self, attributes: Any, joins: Any, order: Any, entity: EntityDefinition) -> RequirementSet:
        """Normalize a full (attributes, joins, order) declaration scoped to *entity*."""
        normalized_attributes = self.attributes(attributes, entity)
        normalized_joins = self.joins(joins, entity)
        return RequirementSet(
            attributes=normalized_attributes,
            joins=normalized_joins,
            order=self.order(order, entity, scope=normalized_joins if self._request else None),
        )

    def attributes(self, raw: Any, entity: EntityDefinition) -> list[Attribute] | None:
        """Normalize an attribute list; every name must be a field of *entity*.

        Repeated names are dropped, except in request mode.
        """
        if raw is None:
            return None if self._request else []
        entries = raw if isinstance(raw, (list, tuple)) else [raw]

        result: list[Attribute] = []
        for entry in entries:
            if self._request and _is_raw_expression(entry):
                result.append(_raw_expression(entry))
                continue
            if not isinstance(entry, str):
                self._error(ErrorKind.UNKNOWN_FIELD, f"Attribute of {self._subject} is not a field name: {entry!r}")
                continue
            if not entity.has_field(entry):
                self._error(
                    ErrorKind.UNKNOWN_FIELD,
                    f"Attribute of {self._subject} refers to a nonexistent field '{entity.name}.{entry}'",
                )
                continue
            # Requests keep the caller's attribute list as given.
            if self._request or entry not in result:
                result.append(entry)
        return result

    def joins(self, raw: Any, parent: EntityDefinition) -> list[JoinSpec]:
        """Normalize a join tree hanging off *parent*. Duplicate joins are merged."""
        if raw is None:
            return []
        entries = raw if isinstance(raw, (list, tuple)) else [raw]

        result: list[JoinSpec] = []
        for entry in entries:
            join = self.join(entry, parent)
            if join is None:
                continue
            existing = find_join(result, join)
            if existing is None:
                result.append(join)
            else:
                merge_into(existing, join)
        return result

    def join(self, entry: Any, parent: EntityDefinition) -> JoinSpec | None:
        """Normalize one join entry into ``JoinSpec`` form and recurse into its body."""
        resolved = self._resolve_step(entry, parent, "Join")
        if resolved is None:
            return None
        step, target, body = resolved

        attributes = self.attributes(body.get("attributes"), target)
        joins = self.joins(body.get("joins", body.get("include")), target)
        return JoinSpec(
            target=step.target,
            alias=step.alias,
            attributes=attributes,
            joins=joins,
            order=self.order(body.get("order"), target, scope=joins if self._request else None),
            options=copy.deepcopy({key: value for key, value in body.items() if key not in JOIN_KEYS}),
        )

    def order(self, raw: Any, entity: EntityDefinition, *, scope: list[JoinSpec] | None = None) -> list[OrderEntry]:
        """Normalize an order list scoped to *entity*.

        Args:
            raw: The declared order entry or list of entries.
            entity: Entity the order clauses start from.
            scope: Join tree that path segments are matched against before
                falling back to the registry's associations.
        """
        if raw is None:
            return []
        entries = raw if isinstance(raw, (list, tuple)) else [raw]

        result: list[OrderEntry] = []
        for entry in entries:
            clause = self.order_entry(entry, entity, scope=scope)
            if clause is not None:
                result.append(clause)
        return result

    def order_entry(
        self,
        entry: Any,
        entity: EntityDefinition,
        *,
        scope: list[JoinSpec] | None = None,
    ) -> OrderEntry | None:
        """Normalize one order entry.

        A plain string is a raw token and passes through untouched. A raw
        expression sorts ascending. A list is ``[*path, field, direction?]``:
        a missing or unrecognised direction gets ``ASC`` appended, a
        recognised one is upper-cased.
        """
        if isinstance(entry, RawOrder):
            return entry
        if isinstance(entry, str):
            return RawOrder(sql=entry)
        if isinstance(entry, OrderClause):
            items: list[Any] = [*entry.path, entry.field, entry.direction]
        elif _is_raw_expression(entry):
            return OrderClause(field=_raw_expression(entry))
        elif isinstance(entry, (list, tuple)):
            items = list(entry)
        else:
            self._error(ErrorKind.INVALID_ORDER_CLAUSE, f"Order of {self._subject} is invalid: {entry!r}")
            return None

        if not items:
            self._error(ErrorKind.INVALID_ORDER_CLAUSE, f"Order of {self._subject} contains an empty clause")
            return None

        items = _with_direction(items)
        path, terminal, direction = items[:-2], items[-2], items[-1]

        parent = entity
        steps: list[JoinStep] = []
        level = scope
        for segment in path:
            resolved = self._resolve_order_step(segment, parent, level)
            if resolved is None:
                return None
            step, parent, level = resolved
            steps.append(step)

        if _is_raw_expression(terminal):
            return OrderClause(path=steps, field=_raw_expression(terminal), direction=Direction(direction))
        if not isinstance(terminal, str):
            self._error(ErrorKind.INVALID_ORDER_CLAUSE, f"Order of {self._subject} has an invalid field {terminal!r}")
            return None
        if not parent.has_field(terminal):
            self._error(
                ErrorKind.UNKNOWN_FIELD,
                f"Order of {self._subject} refers to a nonexistent field '{parent.name}.{terminal}'",
            )
            return None
        return OrderClause(path=steps, field=terminal, direction=Direction(direction))

    # ################
    # Implementation
    # ################

    def _error(self, kind: ErrorKind, message: str) -> None:
        self.diagnostics.append(Diagnostic(kind=kind, message=message, entity=self._entity, field=self._field))

    def _resolve_step(
        self,
        entry: Any,
        parent: EntityDefinition,
        clause: str,
    ) -> tuple[JoinStep, EntityDefinition, Mapping[str, Any]] | None:
        """Resolve a join-shaped entry to its step, target entity and body.

        Checks that the target entity exists and that *parent* declares an
        association to it under the given alias.
        """
        invalid = ErrorKind.INVALID_JOIN if clause == "Join" else ErrorKind.INVALID_ORDER_CLAUSE
        reference = _split_reference(entry)
        if reference is None:
            self._error(invalid, f"{clause} of {self._subject} is invalid: {entry!r}")
            return None
        target_ref, alias, body = reference

        if isinstance(target_ref, EntityDefinition):
            target_name = target_ref.name
        elif isinstance(target_ref, str):
            target_name = target_ref
        else:
            self._error(invalid, f"{clause} of {self._subject} is invalid: {entry!r}")
            return None

        target = self._registry.lookup_entity(target_name)
        if target is None:
            self._error(
                ErrorKind.UNKNOWN_ENTITY,
                f"{clause} of {self._subject} points to unknown entity '{target_name}'",
            )
            return None

        if alias is not None and not isinstance(alias, str):
            self._error(invalid, f"{clause} of {self._subject} has invalid alias {alias!r}")
            return None

        if self._registry.lookup_association(parent.name, target_name, alias) is None:
            alias_str = f" ({alias})" if alias is not None else ""
            self._error(
                ErrorKind.INVALID_ASSOCIATION,
                f"{clause} of {self._subject} includes invalid association"
                f" from '{parent.name}' to '{target_name}{alias_str}'",
            )
            return None

        return JoinStep(target=target_name, alias=alias), target, body

    def _resolve_order_step(
        self,
        segment: Any,
        parent: EntityDefinition,
        level: list[JoinSpec] | None,
    ) -> tuple[JoinStep, EntityDefinition, list[JoinSpec] | None] | None:
        if level:
            match = _match_join(segment, level)
            if match is not None:
                target = self._registry.lookup_entity(match.target)
                if target is not None:
                    return match.step, target, match.joins

        resolved = self._resolve_step(segment, parent, "Order")
        if resolved is None:
            return None
        step, target, _ = resolved
        return step, target, None


# ------------------------------------------------------------------
# Module-level helper functions
# ------------------------------------------------------------------


def _is_raw_expression(entry: Any) -> bool:
    return isinstance(entry, RawExpression) or (
        isinstance(entry, Mapping) and set(entry) == {"raw"} and isinstance(entry["raw"], str)
    )


def _raw_expression(entry: Any) -> RawExpression:
    if isinstance(entry, RawExpression):
        return entry
    return RawExpression(sql=entry["raw"])


def _with_direction(items: list[Any]) -> list[Any]:
    """Return *items* ending in a normalized ``"ASC"``/``"DESC"`` token."""
    last = items[-1]
    if len(items) > 1 and isinstance(last, Direction):
        return [*items[:-1], last.value]
    if len(items) > 1 and isinstance(last, str) and last.upper() in ("ASC", "DESC"):
        return [*items[:-1], last.upper()]
    return [*items, Direction.ASC.value]


def _split_reference(entry: Any) -> tuple[Any, Any, Mapping[str, Any]] | None:
    """Split a join-shaped entry into (target reference, alias, body)."""
    if isinstance(entry, (str, EntityDefinition)):
        return entry, None, {}
    if isinstance(entry, JoinStep):
        return entry.target, entry.alias, {}
    if isinstance(entry, JoinSpec):
        body: dict[str, Any] = dict(entry.options)
        body.update(attributes=entry.attributes, joins=entry.joins, order=entry.order)
        return entry.target, entry.alias, body
    if isinstance(entry, Mapping):
        target_ref = entry.get("target", entry.get("model"))
        if target_ref is None:
            return None
        return target_ref, entry.get("alias", entry.get("as")), entry
    return None


def _match_join(segment: Any, level: list[JoinSpec]) -> JoinSpec | None:
    """Find the join of *level* that an order path segment refers to.

    A bare string matches a join alias first, then an unaliased join to the
    entity of that name.
    """
    if isinstance(segment, str):
        for join in level:
            if join.alias == segment:
                return join
    reference = _split_reference(segment)
    if reference is None:
        return None
    target_ref, alias, _ = reference
    target_name = target_ref.name if isinstance(target_ref, EntityDefinition) else target_ref
    for join in level:
        if join.target == target_name and join.alias == alias:
            return join
    return None
