"""Tests for the gradient command-line interface."""

import json
import re

import pytest
from typer.testing import CliRunner

from gradient.cli import app

runner = CliRunner()

UUID = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}")


@pytest.fixture
def workspace(monkeypatch, tmp_path):
    """Point the CLI at a throwaway SQLite database and media root."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("gradient.config.ENV_LOCATIONS", [])
    monkeypatch.setenv("GRADIENT_BACKEND", "sqlite")
    monkeypatch.setenv("GRADIENT_DATABASE_PATH", str(tmp_path / "gradient.db"))
    monkeypatch.setenv("GRADIENT_MEDIA_ROOT", str(tmp_path / "media"))
    return tmp_path


def _invoke(*args):
    result = runner.invoke(app, list(args))
    assert result.exit_code == 0, result.output
    return result


def _created_id(result) -> str:
    match = UUID.search(result.output)
    assert match, result.output
    return match.group(0)


class TestCli:
    """End-to-end CLI tests against the SQLite backend."""

    def test_project_lifecycle(self, workspace):
        project_id = _created_id(_invoke("add-project", "Sign", "-w", "Laser Cutter"))
        _invoke("add-project", "Box", "-d", "laser etched lid")

        listed = _invoke("projects")
        assert "Sign" in listed.output and "Box" in listed.output

        searched = _invoke("projects", "--search", "laser", "--scope", "Workshops")
        assert "Sign" in searched.output
        assert "Box" not in searched.output

        _invoke("add-task", project_id, "Sand", "--due", "2030-01-02")
        tasks = _invoke("tasks", project_id)
        assert "Sand" in tasks.output

        _invoke("add-note", project_id, "Glue-up went well", "--title", "Day 1")
        notes = _invoke("notes", project_id)
        assert "Day 1" in notes.output

        assert "consistent" in _invoke("orphans", project_id).output

        deleted = _invoke("delete-project", project_id, "--yes")
        assert "1 task(s)" in deleted.output
        assert "1 note(s)" in deleted.output
        assert "Sign" not in _invoke("projects").output

    def test_add_note_with_attachment(self, workspace):
        project_id = _created_id(_invoke("add-project", "Stool"))
        audio = workspace / "memo.m4a"
        audio.write_bytes(b"audio")

        result = _invoke("add-note", project_id, "Listen", "--attach", str(audio))

        assert "1 attachment(s)" in result.output
        assert len(list((workspace / "media" / "attachments").glob("*.m4a"))) == 1

    def test_unsupported_attachment(self, workspace):
        project_id = _created_id(_invoke("add-project", "Stool"))
        doc = workspace / "plan.pdf"
        doc.write_bytes(b"%PDF")

        result = runner.invoke(app, ["add-note", project_id, "Plan", "--attach", str(doc)])
        assert result.exit_code != 0

    def test_task_for_missing_project_fails(self, workspace):
        result = runner.invoke(app, ["add-task", "no-such-project", "Sand"])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_blank_project_name_fails(self, workspace):
        result = runner.invoke(app, ["add-project", "  "])
        assert result.exit_code == 1

    def test_export(self, workspace):
        project_id = _created_id(_invoke("add-project", "Bench"))
        _invoke("add-task", project_id, "Cut")

        _invoke("export", "--output", str(workspace / "out"))

        projects = (workspace / "out" / "projects.jsonl").read_text().splitlines()
        tasks = (workspace / "out" / "tasks.jsonl").read_text().splitlines()
        assert json.loads(projects[0])["name"] == "Bench"
        assert json.loads(tasks[0])["projectId"] == project_id
        assert (workspace / "out" / "notes.jsonl").read_text() == ""
