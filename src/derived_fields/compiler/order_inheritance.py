# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Order inheritance: sorting by a derived field sorts by its own order clauses.

An order clause whose terminal field is derived is replaced, at the same
position, by the derived field's own order clauses, each prefixed with the
original clause's join path. The same substitution runs at closure time
against the schema and at request time against each request.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

from derived_fields.compiler.errors import Diagnostic, ErrorKind
from derived_fields.compiler.graph import order_terminal, walk
from derived_fields.model.requirements import OrderClause, OrderEntry, RequirementSet
from derived_fields.model.schema import FieldKey, Registry

# Returns the (already expanded) order clauses of a derived field.
OrderLookup = Callable[[FieldKey], list[OrderEntry]]

# ###############
# Public Interface
# ###############


def substitute_orders(
    orders: list[OrderEntry],
    entity_name: str,
    registry: Registry,
    lookup: OrderLookup,
    subject: str,
    *,
    keep_repeats: bool = False,
) -> tuple[list[OrderEntry], list[Diagnostic]]:
    """Return *orders* with every clause sorting by a derived field replaced.

    Raw entries and clauses on base fields are kept in place. Clauses taken
    from a derived field that are raw tokens are inserted without a path
    prefix. An inherited clause equal to one already in the result is dropped.

    Args:
        orders: Normalized order entries scoped to *entity_name*.
        entity_name: Entity the clauses start from.
        registry: Registry used to tell base fields from derived ones.
        lookup: Returns the order clauses of a derived field; these must
            already be free of derived terminals.
        subject: Human-readable owner of *orders*, used in messages.
        keep_repeats: Keep entries of *orders* itself even when they repeat
            an earlier entry. Otherwise they are dropped like inherited ones.

    Returns:
        The substituted order list and a ``MissingOrderClause`` diagnostic
        for each derived terminal that declares no order clauses.
    """
    result: list[OrderEntry] = []
    diagnostics: list[Diagnostic] = []

    def _append(entry: OrderEntry) -> None:
        # A repeated sort key has no effect; keep the first occurrence only.
        if entry not in result:
            result.append(entry)

    for clause in orders:
        terminal = order_terminal(clause, entity_name) if isinstance(clause, OrderClause) else None
        owner = registry.lookup_entity(terminal.entity) if terminal is not None else None
        if terminal is None or owner is None or not owner.is_derived(terminal.field):
            if keep_repeats:
                result.append(clause)
            else:
                _append(clause)
            continue

        inherited = lookup(terminal)
        if not inherited:
            diagnostics.append(
                Diagnostic(
                    kind=ErrorKind.MISSING_ORDER_CLAUSE,
                    message=(
                        f"Order clause of {subject} refers to derived field '{terminal}'"
                        " which has no order clause defined"
                    ),
                    entity=terminal.entity,
                    field=terminal.field,
                )
            )
            continue

        assert isinstance(clause, OrderClause)
        for entry in inherited:
            if isinstance(entry, OrderClause):
                _append(entry.model_copy(update={"path": [*clause.path, *entry.path]}, deep=True))
            else:
                _append(entry.model_copy())
    return result, diagnostics


def substitute_tree(
    requirements: RequirementSet,
    entity_name: str,
    registry: Registry,
    lookup: OrderLookup,
    subject: str,
    *,
    keep_repeats: bool = False,
) -> list[Diagnostic]:
    """Run :func:`substitute_orders` on *requirements* and every nested join, in place."""
    diagnostics: list[Diagnostic] = []
    for scope_entity, scope in walk(requirements, entity_name):
        scope.order, problems = substitute_orders(
            scope.order, scope_entity, registry, lookup, subject, keep_repeats=keep_repeats
        )
        diagnostics.extend(problems)
    return diagnostics


def inherit_orders(
    requirements: Mapping[FieldKey, RequirementSet],
    registry: Registry,
    processing_order: list[FieldKey],
) -> list[Diagnostic]:
    """Substitute derived order terminals in every derived field, in place.

    Args:
        requirements: Closed requirement set of every derived field.
        registry: Registry used to tell base fields from derived ones.
        processing_order: Derived fields ordered so that every field a
            clause sorts by comes before the clause's owner.

    Returns:
        The ``MissingOrderClause`` diagnostics found.
    """

    def _lookup(key: FieldKey) -> list[OrderEntry]:
        return requirements[key].order

    diagnostics: list[Diagnostic] = []
    for key in processing_order:
        diagnostics.extend(
            substitute_tree(requirements[key], key.entity, registry, _lookup, f"derived field '{key}'")
        )
    return diagnostics
