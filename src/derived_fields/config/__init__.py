# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Loading schema documents from YAML."""

from derived_fields.config.loader import (
    ConfigError,
    SchemaDocument,
    load_schema_document,
    parse_schema_document,
)

__all__ = [
    "ConfigError",
    "SchemaDocument",
    "load_schema_document",
    "parse_schema_document",
]
