# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Diagnostics and exceptions raised by schema closure and request expansion."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from derived_fields.model.schema import FieldKey

# ###############
# Public Interface
# ###############


class ErrorKind(Enum):
    """The kinds of failure this package reports."""

    UNKNOWN_FIELD = "UnknownField"
    UNKNOWN_ENTITY = "UnknownEntity"
    INVALID_JOIN = "InvalidJoin"
    INVALID_ORDER_CLAUSE = "InvalidOrderClause"
    INVALID_ASSOCIATION = "InvalidAssociation"
    CIRCULAR_DEPENDENCY = "CircularDependency"
    MISSING_ORDER_CLAUSE = "MissingOrderClause"


@dataclass(frozen=True)
class Diagnostic:
    """A single schema or request problem.

    Attributes:
        kind: What went wrong.
        message: Human-readable description of the problem.
        entity: Entity whose declaration (or request) contains the problem.
        field: Derived field being registered, if any.
        edge: For cycles, the ``(consumer, dependency)`` edge that closed it.
    """

    kind: ErrorKind
    message: str
    entity: str | None = None
    field: str | None = None
    edge: tuple[FieldKey, FieldKey] | None = None

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"


class SchemaError(Exception):
    """Raised when schema initialization fails.

    Carries every diagnostic collected before initialization was aborted.
    """

    def __init__(self, diagnostics: list[Diagnostic]) -> None:
        self.diagnostics = list(diagnostics)
        lines = "\n".join(f"  {d}" for d in self.diagnostics)
        super().__init__(f"Derived field schema is invalid:\n{lines}")

    @property
    def kinds(self) -> list[ErrorKind]:
        return [d.kind for d in self.diagnostics]


class RequestError(Exception):
    """Raised when a single request cannot be expanded."""

    def __init__(self, diagnostic: Diagnostic) -> None:
        self.diagnostic = diagnostic
        super().__init__(str(diagnostic))

    @property
    def kind(self) -> ErrorKind:
        return self.diagnostic.kind
