# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Schema initialization: registration, dependency sorting, closure and order inheritance.

The phases run once, in order, and all-or-nothing:

1. Register every derived field (normalize and validate declarations).
2. Sort derived fields by attribute dependencies, rejecting cycles.
3. Close each field's requirements over the fields it reads.
4. Sort derived fields by order dependencies, rejecting cycles.
5. Replace order clauses on derived fields by inherited clauses.

The result is a :class:`ClosedSchema`, which is read-only and can be shared
by any number of concurrent request expansions.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from derived_fields.compiler.closure import close_requirements
from derived_fields.compiler.errors import SchemaError
from derived_fields.compiler.graph import attribute_graph, order_graph
from derived_fields.compiler.order_inheritance import inherit_orders
from derived_fields.compiler.registrar import register_all
from derived_fields.model.requirements import RequirementSet
from derived_fields.model.schema import FieldKey, Registry

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############


@dataclass(frozen=True)
class ClosedSchema:
    """The registry together with the closed requirement set of every derived field.

    Attributes:
        registry: The host registry the schema was built from.
        requirements: Closed requirement sets keyed by field. Each set names
            base fields and joins only, and its order clauses never sort by a
            derived field.
    """

    registry: Registry
    requirements: Mapping[FieldKey, RequirementSet]

    def is_derived(self, entity: str, field_name: str) -> bool:
        return FieldKey(entity, field_name) in self.requirements

    def derived_fields(self, entity: str) -> list[str]:
        """Return the derived field names of *entity* in declaration order."""
        return [key.field for key in self.requirements if key.entity == entity]

    def requirements_of(self, entity: str, field_name: str) -> RequirementSet:
        """Return a private copy of a derived field's closed requirement set."""
        return self.requirements[FieldKey(entity, field_name)].model_copy(deep=True)


def initialize_schema(registry: Registry) -> ClosedSchema:
    """Validate and close every derived field of *registry*.

    The registry itself is not modified.

    Raises:
        SchemaError: If any declaration is invalid, if derived fields depend
            on each other circularly, or if an order clause sorts by a derived
            field that has no order clauses. No partial schema is returned.
    """
    requirements, diagnostics = register_all(registry)
    if diagnostics:
        raise SchemaError(diagnostics)
    logger.debug("Registered %d derived field(s)", len(requirements))

    graph = attribute_graph(requirements, registry)
    cycle = graph.cycle_diagnostic()
    if cycle is not None:
        raise SchemaError([cycle])
    close_requirements(requirements, registry, graph.processing_order())
    logger.debug("Closed attribute and join requirements")

    graph = order_graph(requirements, registry)
    cycle = graph.cycle_diagnostic("in order clause")
    if cycle is not None:
        raise SchemaError([cycle])
    diagnostics = inherit_orders(requirements, registry, graph.processing_order())
    if diagnostics:
        raise SchemaError(diagnostics)

    logger.info("Initialized derived field schema with %d derived field(s)", len(requirements))
    return ClosedSchema(registry=registry, requirements=MappingProxyType(requirements))


class SchemaHandle:
    """Initializes a schema at most once and hands out the result.

    Concurrent callers of :meth:`get` block until the single initialization
    finishes. A failed initialization is not retried; every later call
    re-raises the same :class:`SchemaError`.
    """

    def __init__(self, registry: Registry) -> None:
        self._registry = registry
        self._lock = threading.Lock()
        self._schema: ClosedSchema | None = None
        self._error: SchemaError | None = None

    @property
    def initialized(self) -> bool:
        return self._schema is not None or self._error is not None

    def get(self) -> ClosedSchema:
        with self._lock:
            if self._schema is None and self._error is None:
                try:
                    self._schema = initialize_schema(self._registry)
                except SchemaError as exc:
                    self._error = exc
            if self._error is not None:
                raise self._error
            assert self._schema is not None
            return self._schema
