# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Typed requirement sets: attribute lists, join trees and order clauses."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic import Field as _Field

# ###############
# Public Interface
# ###############


class Direction(Enum):
    """Sort direction of an order clause."""

    ASC = "ASC"
    DESC = "DESC"


class RawExpression(BaseModel):
    """An opaque expression (e.g. SQL) used where a field name is expected."""

    kind: Literal["raw_expression"] = "raw_expression"
    sql: str


class JoinStep(BaseModel):
    """One hop of an order clause path: an association by target and alias."""

    model_config = ConfigDict(frozen=True)

    target: str
    alias: str | None = None

    @property
    def label(self) -> str:
        return self.alias if self.alias is not None else self.target

    def to_dict(self) -> str | dict[str, str]:
        if self.alias is None:
            return self.target
        return {"target": self.target, "alias": self.alias}


class OrderClause(BaseModel):
    """A structured sort key: a join path, a terminal field and a direction."""

    kind: Literal["field"] = "field"
    path: list[JoinStep] = _Field(default_factory=list)
    field: str | RawExpression
    direction: Direction = Direction.ASC

    @property
    def field_name(self) -> str | None:
        """The terminal field name, or None when the terminal is a raw expression."""
        return self.field if isinstance(self.field, str) else None

    def to_list(self) -> list[Any]:
        terminal: Any = self.field if isinstance(self.field, str) else {"raw": self.field.sql}
        return [*(step.to_dict() for step in self.path), terminal, self.direction.value]


class RawOrder(BaseModel):
    """A raw order token passed through verbatim, never validated or rewritten."""

    kind: Literal["raw"] = "raw"
    sql: str


OrderEntry = Annotated[OrderClause | RawOrder, _Field(discriminator="kind")]

Attribute = str | RawExpression


class RequirementSet(BaseModel):
    """The (attributes, joins, order) triple shared by fields, joins and requests.

    ``attributes`` is None only on requests, where it means "all fields".
    ``options`` holds host query options (``where``, ``required``, ...) that
    are carried through untouched.
    """

    attributes: list[Attribute] | None = _Field(default_factory=list)
    joins: list[JoinSpec] = _Field(default_factory=list)
    order: list[OrderEntry] = _Field(default_factory=list)
    options: dict[str, Any] = _Field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return the compact mapping form, omitting empty joins and order."""
        d: dict[str, Any] = dict(self.options)
        if self.attributes is not None:
            d["attributes"] = [a if isinstance(a, str) else {"raw": a.sql} for a in self.attributes]
        if self.joins:
            d["joins"] = [j.to_dict() for j in self.joins]
        if self.order:
            d["order"] = [o.sql if isinstance(o, RawOrder) else o.to_list() for o in self.order]
        return d


class JoinSpec(RequirementSet):
    """A join to an associated entity with requirements scoped to that entity."""

    target: str
    alias: str | None = None

    @property
    def label(self) -> str:
        return self.alias if self.alias is not None else self.target

    @property
    def step(self) -> JoinStep:
        return JoinStep(target=self.target, alias=self.alias)

    def same_join(self, other: JoinSpec) -> bool:
        """Two joins are the same join iff target entity and alias match."""
        return self.target == other.target and self.alias == other.alias

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"target": self.target}
        if self.alias is not None:
            d["alias"] = self.alias
        d.update(super().to_dict())
        return d


# Resolve the forward reference between RequirementSet and JoinSpec.
RequirementSet.model_rebuild()
JoinSpec.model_rebuild()
