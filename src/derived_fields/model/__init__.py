# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Schema and requirement models (entities, fields, joins, order clauses)."""

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
from derived_fields.model.schema import (
    AssociationDefinition,
    EntityDefinition,
    FieldDefinition,
    FieldKey,
    FieldKind,
    Registry,
)

__all__ = [
    # Host schema
    "AssociationDefinition",
    "EntityDefinition",
    "FieldDefinition",
    "FieldKey",
    "FieldKind",
    "Registry",
    # Requirements
    "Attribute",
    "Direction",
    "JoinSpec",
    "JoinStep",
    "OrderClause",
    "OrderEntry",
    "RawExpression",
    "RawOrder",
    "RequirementSet",
]
