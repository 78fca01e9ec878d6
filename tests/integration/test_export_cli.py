"""Integration tests for the db and export CLI commands against a SQLite file store."""

import json
from pathlib import Path

import pytest
import typer
from openpyxl import load_workbook
from typer.testing import CliRunner

from collection_export.cli.app import app
from collection_export.cli.export_cmd import parse_header_option

runner = CliRunner()

ADMIN_ID = "admin0000000001"
ANN_ID = "ann000000000001"

FIXTURES = {
    "admins": [{"id": ADMIN_ID, "email": "admin@example.com"}],
    "collections": [
        {
            "id": "users0000000001",
            "name": "users",
            "type": "auth",
            "schema": [
                {"name": "email", "type": "email", "required": True},
                {"name": "name", "type": "text"},
            ],
            "listRule": "id = @request.auth.id",
            "viewRule": "",
        },
        {
            "id": "messages0000001",
            "name": "messages",
            "type": "base",
            "schema": [
                {"name": "message", "type": "text", "required": True},
                {
                    "name": "author",
                    "type": "relation",
                    "options": {"collectionId": "users0000000001", "maxSelect": 1},
                },
            ],
            "listRule": "author = @request.auth.id",
            "viewRule": "author = @request.auth.id",
        },
    ],
    "records": {
        "users": [
            {"id": ANN_ID, "email": "ann@example.com", "name": "Ann"},
            {"id": "bob000000000001", "email": "bob@example.com", "name": "Bob"},
        ],
        "messages": [
            {"id": "msg000000000001", "created": "2024-01-01T10:00:00+00:00", "message": "hello", "author": ANN_ID},
            {
                "id": "msg000000000002",
                "created": "2024-01-02T12:30:00+00:00",
                "message": "world",
                "author": "bob000000000001",
            },
        ],
    },
}

EXPORT_ARGS = [
    "export",
    "create",
    "-c",
    "messages",
    "-H",
    "message:message",
    "-H",
    "created:created:Asia/Bangkok",
    "-H",
    "author.email:author.email",
    "-H",
    "author.name:author.name",
    "--sort",
    "created",
]


@pytest.fixture
def store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the CLI at a fresh SQLite file and storage directory; returns the storage directory."""
    storage_dir = tmp_path / "artifacts"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    monkeypatch.setenv("EXPORT_STORAGE_DIR", str(storage_dir))
    monkeypatch.setattr("collection_export.cli.app.setup_logging", lambda *args, **kwargs: None)
    return storage_dir


@pytest.fixture
def imported_store(store: Path, tmp_path: Path) -> Path:
    fixture_file = tmp_path / "fixtures.json"
    fixture_file.write_text(json.dumps(FIXTURES), encoding="utf-8")
    result = runner.invoke(app, ["db", "import", str(fixture_file)])
    assert result.exit_code == 0, result.output
    return store


def _file_path(output: str) -> Path:
    for line in output.splitlines():
        if line.startswith("File path: "):
            return Path(line.removeprefix("File path: "))
    msg = f"no file path in output:\n{output}"
    raise AssertionError(msg)


class TestParseHeaderOption:
    """Tests for the --header option parser."""

    def test_field_and_label(self) -> None:
        item = parse_header_option("author.email:Email")
        assert item.field_name == "author.email"
        assert item.header == "Email"
        assert item.timezone is None

    def test_timezone(self) -> None:
        assert parse_header_option("created:Created:Asia/Bangkok").timezone == "Asia/Bangkok"

    @pytest.mark.parametrize("value", ["message", ":label", "message:"])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(typer.BadParameter):
            parse_header_option(value)


class TestDbCommands:
    """Tests for `db init` and `db import`."""

    def test_init(self, store: Path) -> None:
        result = runner.invoke(app, ["db", "init"])
        assert result.exit_code == 0, result.output
        assert "exports collection" in result.output

        again = runner.invoke(app, ["db", "init"])
        assert again.exit_code == 0
        assert result.output == again.output

    def test_import(self, store: Path, tmp_path: Path) -> None:
        fixture_file = tmp_path / "fixtures.json"
        fixture_file.write_text(json.dumps(FIXTURES), encoding="utf-8")

        result = runner.invoke(app, ["db", "import", str(fixture_file)])

        assert result.exit_code == 0, result.output
        assert "Admins:       1" in result.output
        assert "Collections:  2" in result.output
        assert "Records:      4" in result.output

    def test_import_invalid_json(self, store: Path, tmp_path: Path) -> None:
        fixture_file = tmp_path / "broken.json"
        fixture_file.write_text("{not json", encoding="utf-8")

        result = runner.invoke(app, ["db", "import", str(fixture_file)])

        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_import_missing_file(self, store: Path, tmp_path: Path) -> None:
        result = runner.invoke(app, ["db", "import", str(tmp_path / "missing.json")])
        assert result.exit_code != 0


class TestExportCreate:
    """Tests for `export create`."""

    def test_admin_csv(self, imported_store: Path) -> None:
        result = runner.invoke(app, [*EXPORT_ARGS, "--owner-id", ADMIN_ID])

        assert result.exit_code == 0, result.output
        assert "Export created: " in result.output
        assert "Format: csv" in result.output
        path = _file_path(result.output)
        assert path.is_relative_to(imported_store)
        assert path.read_text(encoding="utf-8") == (
            "message,created,author.email,author.name\n"
            "hello,2024-01-01T17:00:00+07:00,ann@example.com,Ann\n"
            "world,2024-01-02T19:30:00+07:00,bob@example.com,Bob\n"
        )

    def test_auth_record_scope(self, imported_store: Path) -> None:
        result = runner.invoke(app, [*EXPORT_ARGS, "--owner-id", ANN_ID, "--owner-collection", "users"])

        assert result.exit_code == 0, result.output
        assert _file_path(result.output).read_text(encoding="utf-8").splitlines() == [
            "message,created,author.email,author.name",
            "hello,2024-01-01T17:00:00+07:00,ann@example.com,Ann",
        ]

    def test_headers_json_with_value_map(self, imported_store: Path) -> None:
        headers = [{"fieldName": "author", "header": "Author", "valueMap": {ANN_ID: "ANN"}}]
        result = runner.invoke(
            app,
            ["export", "create", "-c", "messages", "--headers-json", json.dumps(headers), "--owner-id", ADMIN_ID],
        )

        assert result.exit_code == 0, result.output
        assert _file_path(result.output).read_text(encoding="utf-8") == "Author\nANN\nbob000000000001\n"

    def test_xlsx(self, imported_store: Path) -> None:
        result = runner.invoke(app, [*EXPORT_ARGS, "--format", "xlsx", "--owner-id", ADMIN_ID])

        assert result.exit_code == 0, result.output
        path = _file_path(result.output)
        assert path.suffix == ".xlsx"
        rows = list(load_workbook(path).active.iter_rows(values_only=True))
        assert rows[1] == ("hello", "2024-01-01T17:00:00+07:00", "ann@example.com", "Ann")

    def test_background_generation(self, imported_store: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EXPORT_GENERATE_IN_BACKGROUND", "true")

        result = runner.invoke(app, [*EXPORT_ARGS, "--owner-id", ADMIN_ID])

        assert result.exit_code == 0, result.output
        assert "Generating in background" in result.output
        assert ": completed" in result.output
        assert _file_path(result.output).read_text(encoding="utf-8").count("\n") == 3

    def test_invalid_header(self, imported_store: Path) -> None:
        result = runner.invoke(app, ["export", "create", "-c", "messages", "-H", "nope:Nope", "--owner-id", ADMIN_ID])

        assert result.exit_code == 1
        assert "invalid_headers" in result.output

    def test_unknown_collection(self, imported_store: Path) -> None:
        result = runner.invoke(app, ["export", "create", "-c", "ghosts", "-H", "id:ID"])

        assert result.exit_code == 1
        assert "invalid_reference" in result.output
        assert "exportCollectionName" in result.output

    def test_malformed_request(self, imported_store: Path) -> None:
        result = runner.invoke(app, ["export", "create", "-c", "messages", "-H", "id:ID", "--format", "pdf"])

        assert result.exit_code == 1
        assert "Invalid export request" in result.output

    def test_missing_headers(self, imported_store: Path) -> None:
        result = runner.invoke(app, ["export", "create", "-c", "messages"])

        assert result.exit_code == 1
        assert "headers" in result.output


class TestExportValidate:
    """Tests for `export validate`."""

    def test_valid(self, imported_store: Path) -> None:
        result = runner.invoke(
            app,
            [
                "export",
                "validate",
                "-c",
                "messages",
                "-H",
                "author.name:by",
                "--owner-id",
                ANN_ID,
                "--owner-collection",
                "users",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Export is valid: messages as auth_record" in result.output

    def test_invalid_filter(self, imported_store: Path) -> None:
        result = runner.invoke(app, ["export", "validate", "-c", "messages", "-H", "id:ID", "--filter", "message ="])

        assert result.exit_code == 1
        assert "invalid_query" in result.output
        assert "filter" in result.output


class TestExportSweep:
    """Tests for `export sweep`."""

    def test_sweep_keeps_recent(self, imported_store: Path) -> None:
        created = runner.invoke(app, [*EXPORT_ARGS, "--owner-id", ADMIN_ID])
        assert created.exit_code == 0, created.output

        result = runner.invoke(app, ["export", "sweep", "--minutes", "5"])

        assert result.exit_code == 0, result.output
        assert "Deleted 0 exports" in result.output
        assert _file_path(created.output).exists()

    def test_sweep_empty_store(self, store: Path) -> None:
        result = runner.invoke(app, ["export", "sweep"])
        assert result.exit_code == 0, result.output
        assert "Deleted 0 exports" in result.output
