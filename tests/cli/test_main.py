# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for the derived-fields CLI entry point."""

import json
import sys
from pathlib import Path

import pytest

from derived_fields.cli.main import main

EXAMPLE = Path(__file__).resolve().parents[2] / "examples" / "tasks.yaml"

CYCLIC = """\
entities:
  Task:
    fields:
      - name
      - A: {attributes: [B]}
      - B: {attributes: [A]}
"""

# ###############
# Helpers
# ###############


def _run(monkeypatch: pytest.MonkeyPatch, *args: str) -> int:
    """Run the CLI with *args* and return its exit code."""
    monkeypatch.setattr(sys, "argv", ["derived-fields", *args])
    with pytest.raises(SystemExit) as exc_info:
        main()
    code = exc_info.value.code
    assert isinstance(code, int)
    return code


def _write_document(tmp_path: Path, content: str) -> Path:
    document = tmp_path / "schema.yaml"
    document.write_text(content, encoding="utf-8")
    return document


# ###############
# Public Interface
# ###############


def test_main_no_args_prints_help_and_exits(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """main() with no subcommand prints help and exits with code 0."""
    assert _run(monkeypatch) == 0
    assert "usage: derived-fields" in capsys.readouterr().out


# -------- check tests --------


def test_check_example_document(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """check succeeds on a valid document and summarizes it."""
    assert _run(monkeypatch, "check", str(EXAMPLE)) == 0
    out = capsys.readouterr().out
    assert "Checked 3 entity(ies), 5 derived field(s)." in out
    assert "No issues found." in out


def test_check_reports_cycle(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    """check exits with code 1 and prints the cycle."""
    assert _run(monkeypatch, "check", str(_write_document(tmp_path, CYCLIC))) == 1
    err = capsys.readouterr().err
    assert "Error: [CircularDependency]" in err
    assert "Task.A -> Task.B -> Task.A" in err


def test_check_reports_every_registration_problem(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    content = """\
entities:
  Task:
    fields:
      - name
      - Label: {attributes: [missing]}
      - Title: {joins: [Ghost]}
"""
    assert _run(monkeypatch, "check", str(_write_document(tmp_path, content))) == 1
    err = capsys.readouterr().err.splitlines()
    assert len(err) == 2
    assert err[0].startswith("Error: [UnknownField]")
    assert err[1].startswith("Error: [UnknownEntity]")


def test_check_missing_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    assert _run(monkeypatch, "check", str(tmp_path / "missing.yaml")) == 1
    assert "not found" in capsys.readouterr().err


# -------- expand tests --------


def test_expand_derived_field(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """expand prints the expanded request and the injection markers as JSON."""
    code = _run(monkeypatch, "expand", str(EXAMPLE), "Task", "--request", '{"attributes": ["Label"]}')
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["request"] == {
        "attributes": ["name"],
        "joins": [{"target": "Person", "attributes": ["name"]}],
        "order": [["name", "DESC"]],
    }
    assert output["injected"] == [
        {"kind": "derived_field", "path": [], "name": "Label"},
        {"kind": "attribute", "path": [], "name": "name"},
        {"kind": "join", "path": [], "name": "Person"},
    ]


def test_expand_defaults_to_all_fields(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    assert _run(monkeypatch, "expand", str(EXAMPLE), "Project") == 0
    output = json.loads(capsys.readouterr().out)
    assert "attributes" not in output["request"]
    assert output["injected"] == [{"kind": "derived_field", "path": [], "name": "Heading"}]


def test_expand_unknown_field(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    code = _run(monkeypatch, "expand", str(EXAMPLE), "Task", "--request", '{"attributes": ["missing"]}')
    assert code == 1
    assert "Error: [UnknownField]" in capsys.readouterr().err


def test_expand_unknown_entity(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    assert _run(monkeypatch, "expand", str(EXAMPLE), "Ghost") == 1
    assert "Error: [UnknownEntity]" in capsys.readouterr().err


def test_expand_invalid_json(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    assert _run(monkeypatch, "expand", str(EXAMPLE), "Task", "--request", "{not json") == 1
    assert "not valid JSON" in capsys.readouterr().err


def test_expand_request_must_be_object(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    assert _run(monkeypatch, "expand", str(EXAMPLE), "Task", "--request", '["Label"]') == 1
    assert "must be a JSON object" in capsys.readouterr().err


def test_expand_invalid_schema(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    assert _run(monkeypatch, "expand", str(_write_document(tmp_path, CYCLIC)), "Task") == 1
    assert "Error: [CircularDependency]" in capsys.readouterr().err


def test_expand_respects_inactive_option(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    content = """\
options:
  active: false
entities:
  Task:
    fields:
      - name
      - Label: {attributes: [name]}
"""
    path = _write_document(tmp_path, content)
    assert _run(monkeypatch, "expand", str(path), "Task", "--request", '{"attributes": ["Label"]}') == 0
    output = json.loads(capsys.readouterr().out)
    assert output == {"request": {"attributes": ["Label"]}, "injected": []}
