# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for schema initialization and the once-only schema handle."""

from concurrent.futures import ThreadPoolExecutor
from typing import Any

import pytest

from derived_fields.compiler import schema as schema_module
from derived_fields.compiler.errors import ErrorKind, SchemaError
from derived_fields.compiler.schema import ClosedSchema, SchemaHandle, initialize_schema
from derived_fields.model.requirements import Direction, JoinSpec, JoinStep, OrderClause, RequirementSet
from derived_fields.model.schema import (
    AssociationDefinition,
    EntityDefinition,
    FieldDefinition,
    FieldKey,
    FieldKind,
    Registry,
)

# ###############
# Test Helpers
# ###############


def _entity(
    name: str,
    *base: str,
    associations: tuple[str | tuple[str, str], ...] = (),
    **derived: dict[str, Any],
) -> EntityDefinition:
    """Build an entity from base field names and derived field declarations."""
    fields = {field_name: FieldDefinition() for field_name in base}
    fields.update({field_name: FieldDefinition(kind=FieldKind.DERIVED, **decl) for field_name, decl in derived.items()})
    return EntityDefinition(
        name=name,
        fields=fields,
        associations=[
            AssociationDefinition(target=a) if isinstance(a, str) else AssociationDefinition(target=a[0], alias=a[1])
            for a in associations
        ],
    )


def _tasks_registry() -> Registry:
    person = _entity(
        "Person",
        "name",
        "email",
        DisplayName={"attributes": ["name", "email"], "order": [["name", "ASC"]]},
    )
    project = _entity("Project", "title", Heading={"attributes": ["title"], "order": [["title"]]})
    task = _entity(
        "Task",
        "name",
        "PersonId",
        "ProjectId",
        associations=("Person", ("Person", "Reviewer"), "Project"),
        Label={
            "attributes": ["name"],
            "joins": [{"target": "Person", "attributes": ["name"]}],
            "order": [["name", "desc"]],
        },
        Title={
            "attributes": ["Label"],
            "joins": [{"target": "Project", "attributes": ["Heading"]}],
            "order": [["Label"], ["Project", "Heading"]],
        },
        Reviewer={
            "joins": [{"target": "Person", "alias": "Reviewer", "attributes": ["DisplayName"]}],
            "order": [[{"target": "Person", "alias": "Reviewer"}, "DisplayName"]],
        },
    )
    return Registry.of(person, project, task)


def _schema_error(registry: Registry) -> SchemaError:
    with pytest.raises(SchemaError) as exc_info:
        initialize_schema(registry)
    return exc_info.value


# ###############
# Successful Initialization
# ###############


class TestInitializeSchema:
    def test_every_derived_field_is_closed(self) -> None:
        """Every derived field of the registry gets a closed requirement set."""
        schema = initialize_schema(_tasks_registry())
        assert list(schema.requirements) == [
            FieldKey("Person", "DisplayName"),
            FieldKey("Project", "Heading"),
            FieldKey("Task", "Label"),
            FieldKey("Task", "Title"),
            FieldKey("Task", "Reviewer"),
        ]

    def test_derived_attribute_is_inlined(self) -> None:
        """Closed sets contain no derived attribute names."""
        title = initialize_schema(_tasks_registry()).requirements[FieldKey("Task", "Title")]
        assert title.attributes == ["name"]
        assert title.joins == [
            JoinSpec(
                target="Project",
                attributes=["title"],
                order=[OrderClause(field="title")],
            ),
            JoinSpec(target="Person", attributes=["name"]),
        ]

    def test_order_on_derived_field_is_inherited(self) -> None:
        """Closed order clauses name base fields only."""
        title = initialize_schema(_tasks_registry()).requirements[FieldKey("Task", "Title")]
        assert title.order == [
            OrderClause(field="name", direction=Direction.DESC),
            OrderClause(path=[JoinStep(target="Project")], field="title"),
        ]

    def test_aliased_join_is_closed_and_order_keeps_alias(self) -> None:
        """Aliases survive closure and order inheritance."""
        reviewer = initialize_schema(_tasks_registry()).requirements[FieldKey("Task", "Reviewer")]
        step = JoinStep(target="Person", alias="Reviewer")
        assert reviewer.joins == [
            JoinSpec(
                target="Person",
                alias="Reviewer",
                attributes=["name", "email"],
                order=[OrderClause(field="name")],
            )
        ]
        assert reviewer.order == [OrderClause(path=[step], field="name")]

    def test_label_sorts_by_name_desc(self) -> None:
        label = initialize_schema(_tasks_registry()).requirements[FieldKey("Task", "Label")]
        assert label.to_dict() == {
            "attributes": ["name"],
            "joins": [{"target": "Person", "attributes": ["name"]}],
            "order": [["name", "DESC"]],
        }

    def test_registry_without_derived_fields(self) -> None:
        """A registry without derived fields yields an empty schema."""
        schema = initialize_schema(Registry.of(_entity("Person", "name")))
        assert dict(schema.requirements) == {}
        assert schema.derived_fields("Person") == []

    def test_registry_is_not_modified(self) -> None:
        """Initialization does not touch the registry."""
        registry = _tasks_registry()
        before = registry.model_copy(deep=True)
        initialize_schema(registry)
        assert registry == before

    def test_closed_requirements_are_read_only(self) -> None:
        """The closed map cannot be assigned to."""
        schema = initialize_schema(_tasks_registry())
        with pytest.raises(TypeError):
            schema.requirements[FieldKey("Task", "Label")] = RequirementSet()  # type: ignore[index]

    def test_requirements_of_returns_a_copy(self) -> None:
        """Callers get a private copy of a closed set."""
        schema = initialize_schema(_tasks_registry())
        copy = schema.requirements_of("Task", "Label")
        copy.attributes = ["PersonId"]
        assert schema.requirements[FieldKey("Task", "Label")].attributes == ["name"]

    def test_schema_queries(self) -> None:
        schema = initialize_schema(_tasks_registry())
        assert isinstance(schema, ClosedSchema)
        assert schema.is_derived("Task", "Label")
        assert not schema.is_derived("Task", "name")
        assert schema.derived_fields("Task") == ["Label", "Title", "Reviewer"]


# ###############
# Failing Initialization
# ###############


class TestInitializeSchemaErrors:
    def test_self_reference(self) -> None:
        """A derived field that needs itself is a cycle."""
        error = _schema_error(Registry.of(_entity("Task", "name", F={"attributes": ["F"]})))
        assert error.kinds == [ErrorKind.CIRCULAR_DEPENDENCY]
        assert error.diagnostics[0].entity == "Task"
        assert error.diagnostics[0].field == "F"
        assert error.diagnostics[0].edge == (FieldKey("Task", "F"), FieldKey("Task", "F"))

    def test_long_cycle(self) -> None:
        """Cycles across several fields are reported with their path."""
        registry = Registry.of(
            _entity("Task", A={"attributes": ["B"]}, B={"attributes": ["C"]}, C={"attributes": ["A"]})
        )
        error = _schema_error(registry)
        assert error.kinds == [ErrorKind.CIRCULAR_DEPENDENCY]
        assert "Task.A -> Task.B -> Task.C -> Task.A" in str(error)

    def test_cycle_through_join(self) -> None:
        """Cycles through joined entities are detected."""
        registry = Registry.of(
            _entity("Person", "name", associations=("Task",), P={"joins": [{"target": "Task", "attributes": ["T"]}]}),
            _entity("Task", "name", associations=("Person",), T={"joins": [{"target": "Person", "attributes": ["P"]}]}),
        )
        assert _schema_error(registry).kinds == [ErrorKind.CIRCULAR_DEPENDENCY]

    def test_order_cycle(self) -> None:
        """Order clauses that refer to each other are a cycle in order clause."""
        registry = Registry.of(_entity("Task", "name", A={"order": [["B"]]}, B={"order": [["A"]]}))
        error = _schema_error(registry)
        assert error.kinds == [ErrorKind.CIRCULAR_DEPENDENCY]
        assert "in order clause" in error.diagnostics[0].message

    def test_order_reference_is_not_an_attribute_dependency(self) -> None:
        """Sorting by a derived field does not require its attributes."""
        registry = Registry.of(
            _entity("Task", "name", A={"order": [["B"]]}, B={"attributes": ["name"], "order": [["name", "desc"]]})
        )
        schema = initialize_schema(registry)
        assert schema.requirements[FieldKey("Task", "A")].attributes == []
        assert schema.requirements[FieldKey("Task", "A")].order == [OrderClause(field="name", direction=Direction.DESC)]

    def test_diamond_succeeds(self) -> None:
        """Shared dependencies are not cycles."""
        registry = Registry.of(
            _entity(
                "Task",
                "name",
                "due",
                A={"attributes": ["C"]},
                B={"attributes": ["C", "due"]},
                C={"attributes": ["name"]},
            )
        )
        schema = initialize_schema(registry)
        assert schema.requirements[FieldKey("Task", "A")].attributes == ["name"]
        assert schema.requirements[FieldKey("Task", "B")].attributes == ["due", "name"]

    def test_missing_order_clause(self) -> None:
        """Sorting by a derived field without order clauses fails initialization."""
        registry = Registry.of(_entity("Task", "name", Label={"attributes": ["name"]}, Title={"order": [["Label"]]}))
        error = _schema_error(registry)
        assert error.kinds == [ErrorKind.MISSING_ORDER_CLAUSE]
        assert "derived field 'Task.Title'" in error.diagnostics[0].message

    def test_every_registration_problem_is_reported(self) -> None:
        """The schema error lists every registration problem."""
        registry = Registry.of(
            _entity(
                "Task",
                "name",
                Good={"attributes": ["name"]},
                Bad={"attributes": ["missing"]},
                Worse={"joins": ["Ghost"], "order": [[]]},
            )
        )
        error = _schema_error(registry)
        assert error.kinds == [
            ErrorKind.UNKNOWN_FIELD,
            ErrorKind.UNKNOWN_ENTITY,
            ErrorKind.INVALID_ORDER_CLAUSE,
        ]
        assert str(error).startswith("Derived field schema is invalid:")


# ###############
# Schema Handle
# ###############


class TestSchemaHandle:
    def test_initializes_once(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The handle builds the schema on first use only."""
        calls: list[Registry] = []
        original = schema_module.initialize_schema

        def _counting(registry: Registry) -> ClosedSchema:
            calls.append(registry)
            return original(registry)

        monkeypatch.setattr(schema_module, "initialize_schema", _counting)
        handle = SchemaHandle(_tasks_registry())
        assert not handle.initialized
        first = handle.get()
        assert handle.get() is first
        assert handle.initialized
        assert len(calls) == 1

    def test_failure_is_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A failed initialization is raised again without rebuilding."""
        calls: list[Registry] = []
        original = schema_module.initialize_schema

        def _counting(registry: Registry) -> ClosedSchema:
            calls.append(registry)
            return original(registry)

        monkeypatch.setattr(schema_module, "initialize_schema", _counting)
        handle = SchemaHandle(Registry.of(_entity("Task", F={"attributes": ["F"]})))
        with pytest.raises(SchemaError) as first:
            handle.get()
        with pytest.raises(SchemaError) as second:
            handle.get()
        assert second.value is first.value
        assert handle.initialized
        assert len(calls) == 1

    def test_concurrent_callers_share_one_schema(self) -> None:
        """Threads racing on first use all get the same schema."""
        handle = SchemaHandle(_tasks_registry())
        with ThreadPoolExecutor(max_workers=8) as pool:
            schemas = list(pool.map(lambda _: handle.get(), range(16)))
        assert all(schema is schemas[0] for schema in schemas)
