# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Schema compiler: registration, dependency graphs, closure and order inheritance."""

from derived_fields.compiler.errors import Diagnostic, ErrorKind, RequestError, SchemaError
from derived_fields.compiler.merge import merge_into, merged
from derived_fields.compiler.schema import ClosedSchema, SchemaHandle, initialize_schema

__all__ = [
    "initialize_schema",
    "ClosedSchema",
    "SchemaHandle",
    "merge_into",
    "merged",
    "Diagnostic",
    "ErrorKind",
    "SchemaError",
    "RequestError",
]
