# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""YAML schema documents: entities, fields, associations and expansion options."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from derived_fields.model.schema import (
    AssociationDefinition,
    EntityDefinition,
    FieldDefinition,
    FieldKind,
    Registry,
)
from derived_fields.query.expander import ExpansionOptions

# ###############
# Public Interface
# ###############


class ConfigError(Exception):
    """Raised when a schema document is invalid or cannot be loaded."""


@dataclass
class SchemaDocument:
    """A parsed schema document.

    Attributes:
        registry: The entities declared by the document.
        options: Request expansion options.
    """

    registry: Registry
    options: ExpansionOptions = field(default_factory=ExpansionOptions)


def load_schema_document(path: Path) -> SchemaDocument:
    """Load and parse a YAML schema document.

    Args:
        path: Path to the YAML file.

    Returns:
        A SchemaDocument populated from the file.

    Raises:
        ConfigError: If the file cannot be read or the document is invalid.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Schema document not found: {path}") from None
    except OSError as exc:
        raise ConfigError(f"Cannot read schema document: {exc}") from exc

    return parse_schema_document(text, source_label=str(path))


def parse_schema_document(text: str, source_label: str = "<string>") -> SchemaDocument:
    """Parse schema document YAML text into a SchemaDocument.

    Args:
        text: Raw YAML content.
        source_label: Human-readable label used in error messages (e.g. the file path).

    Raises:
        ConfigError: If the YAML is invalid or the document is malformed.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {source_label}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{source_label}: schema document must be a YAML mapping")

    raw_entities = data.get("entities")
    if not isinstance(raw_entities, dict):
        raise ConfigError(f"{source_label}: 'entities' must be a mapping of entity names")

    entities = [_parse_entity(name, entry, source_label) for name, entry in raw_entities.items()]
    options = _parse_options(data.get("options", {}), source_label)
    return SchemaDocument(registry=Registry.of(*entities), options=options)


# ################
# Implementation
# ################

_REQUIREMENT_KEYS = ("attributes", "joins", "include", "order")


def _parse_options(raw: object, source_label: str) -> ExpansionOptions:
    if raw is None:
        return ExpansionOptions()
    if not isinstance(raw, dict):
        raise ConfigError(f"{source_label}: 'options' must be a mapping")
    active = raw.get("active", True)
    if not isinstance(active, bool):
        raise ConfigError(f"{source_label}: 'options.active' must be a boolean")
    return ExpansionOptions(active=active)


def _parse_entity(name: object, entry: object, source_label: str) -> EntityDefinition:
    if not isinstance(name, str):
        raise ConfigError(f"{source_label}: entity names must be strings, got {name!r}")
    location = f"{source_label}: entities.{name}"
    if entry is None:
        entry = {}
    if not isinstance(entry, dict):
        raise ConfigError(f"{location} must be a YAML mapping")

    raw_fields = entry.get("fields", [])
    if not isinstance(raw_fields, list):
        raise ConfigError(f"{location}: 'fields' must be a list")
    fields: dict[str, FieldDefinition] = {}
    for index, raw_field in enumerate(raw_fields):
        field_name, field_def = _parse_field(raw_field, f"{location}.fields[{index}]")
        if field_name in fields:
            raise ConfigError(f"{location}: duplicate field '{field_name}'")
        fields[field_name] = field_def

    raw_associations = entry.get("associations", [])
    if not isinstance(raw_associations, list):
        raise ConfigError(f"{location}: 'associations' must be a list")
    associations = [
        _parse_association(raw, f"{location}.associations[{index}]") for index, raw in enumerate(raw_associations)
    ]

    return EntityDefinition(name=name, fields=fields, associations=associations)


def _parse_field(raw: object, location: str) -> tuple[str, FieldDefinition]:
    """Parse a field entry: a bare name, or a single-key mapping of name to definition."""
    if isinstance(raw, str):
        return raw, FieldDefinition()

    if not isinstance(raw, dict) or len(raw) != 1:
        raise ConfigError(f"{location} must be a field name or a single-key mapping")
    ((name, body),) = raw.items()
    if not isinstance(name, str):
        raise ConfigError(f"{location}: field name must be a string")
    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise ConfigError(f"{location} '{name}': field definition must be a mapping")

    derived = body.get("derived", any(key in body for key in _REQUIREMENT_KEYS))
    if not isinstance(derived, bool):
        raise ConfigError(f"{location} '{name}': 'derived' must be a boolean")
    if not derived:
        return name, FieldDefinition()
    return name, FieldDefinition(
        kind=FieldKind.DERIVED,
        attributes=body.get("attributes"),
        joins=body.get("joins", body.get("include")),
        order=body.get("order"),
    )


def _parse_association(raw: object, location: str) -> AssociationDefinition:
    if isinstance(raw, str):
        return AssociationDefinition(target=raw)
    if not isinstance(raw, dict):
        raise ConfigError(f"{location} must be an entity name or a mapping")
    target = raw.get("target")
    if not isinstance(target, str):
        raise ConfigError(f"{location}: 'target' must be a string")
    alias = raw.get("alias")
    if alias is not None and not isinstance(alias, str):
        raise ConfigError(f"{location}: 'alias' must be a string")
    return AssociationDefinition(target=target, alias=alias)
