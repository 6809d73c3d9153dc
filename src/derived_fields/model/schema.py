# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Entity, field and association definitions supplied by the host registry."""

from __future__ import annotations

from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel
from pydantic import Field as _Field

# ###############
# Public Interface
# ###############


class FieldKind(Enum):
    """Whether a field is stored directly or computed from other fields."""

    BASE = "base"
    DERIVED = "derived"


class FieldKey(NamedTuple):
    """Identifies one field of one entity, e.g. ``Task.Label``."""

    entity: str
    field: str

    def __str__(self) -> str:
        return f"{self.entity}.{self.field}"


class FieldDefinition(BaseModel):
    """A field of an entity.

    Derived fields carry their requirement declarations exactly as client
    code wrote them: a name or list of names for ``attributes``, entity
    names, entity definitions or mappings for ``joins``, and raw strings or
    lists for ``order``. The registrar turns these into a typed
    :class:`~derived_fields.model.requirements.RequirementSet`.
    """

    kind: FieldKind = FieldKind.BASE
    attributes: Any = None
    joins: Any = None
    order: Any = None

    @property
    def is_derived(self) -> bool:
        return self.kind is FieldKind.DERIVED


class AssociationDefinition(BaseModel):
    """A declared relationship to another entity, optionally under an alias."""

    target: str
    alias: str | None = None

    @property
    def label(self) -> str:
        return self.alias if self.alias is not None else self.target


class EntityDefinition(BaseModel):
    """A named entity with its fields and outgoing associations."""

    name: str
    fields: dict[str, FieldDefinition] = _Field(default_factory=dict)
    associations: list[AssociationDefinition] = _Field(default_factory=list)

    def has_field(self, name: str) -> bool:
        return name in self.fields

    def is_derived(self, name: str) -> bool:
        """Return True if *name* is a derived field of this entity."""
        field_def = self.fields.get(name)
        return field_def is not None and field_def.is_derived

    def derived_field_names(self) -> list[str]:
        return [name for name, field_def in self.fields.items() if field_def.is_derived]

    def find_association(self, target: str, alias: str | None = None) -> AssociationDefinition | None:
        """Look up the association to *target* under *alias*.

        An unaliased lookup only matches an unaliased association, so two
        associations to the same entity stay distinguishable.
        """
        for assoc in self.associations:
            if assoc.target == target and assoc.alias == alias:
                return assoc
        return None


class Registry(BaseModel):
    """The entity/association registry owned by the host query engine.

    This package only reads from the registry; it is never mutated.
    """

    entities: dict[str, EntityDefinition] = _Field(default_factory=dict)

    @classmethod
    def of(cls, *entities: EntityDefinition) -> Registry:
        """Build a registry from entity definitions, keyed by their names."""
        return cls(entities={entity.name: entity for entity in entities})

    def lookup_entity(self, name: str) -> EntityDefinition | None:
        return self.entities.get(name)

    def lookup_association(
        self,
        entity: str,
        target: str,
        alias: str | None = None,
    ) -> AssociationDefinition | None:
        """Return the association from *entity* to *target*/*alias*, or None if not declared."""
        source = self.entities.get(entity)
        if source is None:
            return None
        return source.find_association(target, alias)

    def derived_keys(self) -> list[FieldKey]:
        """Return every derived field in the registry, in declaration order."""
        return [
            FieldKey(entity.name, name) for entity in self.entities.values() for name in entity.derived_field_names()
        ]
