# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Dependency graphs between derived fields.

An edge ``consumer -> dependency`` means the consumer's requirement set
references the dependency, which is itself a derived field. Two graphs are
built: one over attribute references (used to close attribute and join
requirements) and one over order-clause references (used to inherit order
clauses). A field that reads another one does not necessarily sort by it,
so the two are checked for cycles independently.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field

from derived_fields.compiler.errors import Diagnostic, ErrorKind
from derived_fields.model.requirements import OrderClause, RequirementSet
from derived_fields.model.schema import FieldKey, Registry

# ###############
# Public Interface
# ###############


@dataclass
class DependencyGraph:
    """Directed graph over derived fields.

    Attributes:
        edges: Adjacency list mapping each consumer to its dependencies.
            Every node appears as a key, in insertion order.
    """

    edges: dict[FieldKey, list[FieldKey]] = field(default_factory=dict)

    def add_node(self, key: FieldKey) -> None:
        self.edges.setdefault(key, [])

    def add_edge(self, consumer: FieldKey, dependency: FieldKey) -> None:
        self.add_node(consumer)
        self.add_node(dependency)
        if dependency not in self.edges[consumer]:
            self.edges[consumer].append(dependency)

    def find_cycle(self) -> list[FieldKey] | None:
        """Detect a cycle using DFS with white/grey/black marking.

        Returns:
            The nodes forming the cycle with the start node repeated at the
            end (e.g. ``[A, B, A]``), or ``None`` if the graph is acyclic.
        """
        WHITE, GREY, BLACK = 0, 1, 2
        color: dict[FieldKey, int] = {}
        path: list[FieldKey] = []

        def _dfs(node: FieldKey) -> list[FieldKey] | None:
            color[node] = GREY
            path.append(node)
            for neighbor in self.edges.get(node, []):
                state = color.get(neighbor, WHITE)
                if state == GREY:
                    cycle_start = path.index(neighbor)
                    return path[cycle_start:] + [neighbor]
                if state == WHITE:
                    result = _dfs(neighbor)
                    if result is not None:
                        return result
            path.pop()
            color[node] = BLACK
            return None

        for node in self.edges:
            if color.get(node, WHITE) == WHITE:
                result = _dfs(node)
                if result is not None:
                    return result
        return None

    def processing_order(self) -> list[FieldKey]:
        """Return every node with each dependency before its dependents.

        The graph must be acyclic (see :meth:`find_cycle`).
        """
        visited: set[FieldKey] = set()
        order: list[FieldKey] = []

        def _visit(node: FieldKey) -> None:
            visited.add(node)
            for dependency in self.edges.get(node, []):
                if dependency not in visited:
                    _visit(dependency)
            order.append(node)

        for node in self.edges:
            if node not in visited:
                _visit(node)
        return order

    def cycle_diagnostic(self, context: str = "") -> Diagnostic | None:
        """Return a ``CircularDependency`` diagnostic if the graph has a cycle."""
        cycle = self.find_cycle()
        if cycle is None:
            return None
        at = cycle[0]
        suffix = f" {context}" if context else ""
        return Diagnostic(
            kind=ErrorKind.CIRCULAR_DEPENDENCY,
            message=(
                f"Circular dependency in derived fields at '{at}'{suffix}: "
                + " -> ".join(str(key) for key in cycle)
            ),
            entity=at.entity,
            field=at.field,
            edge=(cycle[-2], cycle[-1]),
        )


def walk(requirements: RequirementSet, entity: str) -> Iterator[tuple[str, RequirementSet]]:
    """Yield *requirements* and every nested join, each with the entity it is scoped to."""
    yield entity, requirements
    for join in requirements.joins:
        yield from walk(join, join.target)


def order_terminal(clause: OrderClause, entity: str) -> FieldKey | None:
    """Return the field an order clause sorts by, or None for a raw expression.

    The field belongs to the last entity of the clause's path, or to
    *entity* when the path is empty.
    """
    if clause.field_name is None:
        return None
    owner = clause.path[-1].target if clause.path else entity
    return FieldKey(owner, clause.field_name)


def attribute_graph(requirements: Mapping[FieldKey, RequirementSet], registry: Registry) -> DependencyGraph:
    """Build the graph of derived fields referenced through attribute lists.

    References inside nested joins are attributed to the joined entity.
    """
    graph = DependencyGraph()
    for key, requirement_set in requirements.items():
        graph.add_node(key)
        for entity_name, scope in walk(requirement_set, key.entity):
            entity = registry.lookup_entity(entity_name)
            if entity is None or scope.attributes is None:
                continue
            for attribute in scope.attributes:
                if isinstance(attribute, str) and entity.is_derived(attribute):
                    graph.add_edge(key, FieldKey(entity_name, attribute))
    return graph


def order_graph(requirements: Mapping[FieldKey, RequirementSet], registry: Registry) -> DependencyGraph:
    """Build the graph of derived fields referenced as order clause terminals."""
    graph = DependencyGraph()
    for key, requirement_set in requirements.items():
        graph.add_node(key)
        for entity_name, scope in walk(requirement_set, key.entity):
            for clause in scope.order:
                if not isinstance(clause, OrderClause):
                    continue
                terminal = order_terminal(clause, entity_name)
                if terminal is None:
                    continue
                owner = registry.lookup_entity(terminal.entity)
                if owner is not None and owner.is_derived(terminal.field):
                    graph.add_edge(key, terminal)
    return graph
