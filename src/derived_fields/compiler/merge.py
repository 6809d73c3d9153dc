# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Structural merge of requirement sets.

Used both when closing the schema (a derived field absorbing the
requirements of the derived fields it reads) and when expanding a request
(the request absorbing the requirements of the derived fields it names).
"""

from __future__ import annotations

import copy

from derived_fields.model.requirements import JoinSpec, RequirementSet

# ###############
# Public Interface
# ###############


def merge_into(target: RequirementSet, source: RequirementSet) -> None:
    """Merge *source* into *target* in place.

    - Attributes: ordered union, first occurrence wins. A target without an
      attribute list already loads everything and stays that way; a source
      without one turns the target into "all fields".
    - Joins: entries with the same target entity and alias are merged
      recursively; any other entry is appended.
    - Order: source clauses are appended after the target's own, skipping
      clauses the target already contains.
    - Options: source options fill keys the target does not set.

    *source* is never modified and nothing in it is shared with *target*
    afterwards.
    """
    if target.attributes is not None:
        if source.attributes is None:
            target.attributes = None
        else:
            for attribute in source.attributes:
                if attribute not in target.attributes:
                    target.attributes.append(attribute.model_copy() if not isinstance(attribute, str) else attribute)

    for source_join in source.joins:
        existing = find_join(target.joins, source_join)
        if existing is None:
            target.joins.append(source_join.model_copy(deep=True))
        else:
            merge_into(existing, source_join)

    for clause in source.order:
        if clause not in target.order:
            target.order.append(clause.model_copy(deep=True))

    for key, value in source.options.items():
        if key not in target.options:
            target.options[key] = copy.deepcopy(value)


def merged(first: RequirementSet, second: RequirementSet) -> RequirementSet:
    """Return a new requirement set holding *second* merged into *first*."""
    result = first.model_copy(deep=True)
    merge_into(result, second)
    return result


def find_join(joins: list[JoinSpec], join: JoinSpec) -> JoinSpec | None:
    """Return the entry of *joins* that is the same join as *join*, if any."""
    for candidate in joins:
        if candidate.same_join(join):
            return candidate
    return None
