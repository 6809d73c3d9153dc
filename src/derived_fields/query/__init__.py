# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Request-time expansion of derived field references."""

from derived_fields.query.expander import (
    ExpansionOptions,
    ExpansionResult,
    InjectedMarker,
    MarkerKind,
    expand_request,
)

__all__ = [
    "expand_request",
    "ExpansionOptions",
    "ExpansionResult",
    "InjectedMarker",
    "MarkerKind",
]
