"""CLI tests that stop before any database connection is opened."""

from __future__ import annotations

import json

from click.testing import CliRunner

from access_governance.cli import main
from access_governance.csv_upload import csv_template


def _invoke(args):
    return CliRunner().invoke(main, args, env={"ACCESS_DB_DSN": None})


class TestTemplateMode:
    def test_prints_template(self):
        result = _invoke(["--mode", "template"])
        assert result.exit_code == 0
        assert result.output == csv_template()

    def test_writes_template(self, tmp_path):
        out = tmp_path / "template.csv"
        result = _invoke(["--mode", "template", "--output-path", str(out)])
        assert result.exit_code == 0
        assert out.read_text(encoding="utf-8") == csv_template()


class TestInputChecks:
    def test_requires_csv_path(self):
        result = _invoke(["--mode", "csv_upload"])
        assert result.exit_code == 1
        assert "--csv-path is required" in result.output

    def test_rejects_non_csv_extension(self, tmp_path):
        path = tmp_path / "grants.txt"
        path.write_text("user_email\n", encoding="utf-8")
        result = _invoke(["--csv-path", str(path), "--db-dsn", "host=unused"])
        assert result.exit_code == 1
        assert "must be a CSV file" in result.output

    def test_missing_csv_file(self, tmp_path):
        result = _invoke(["--csv-path", str(tmp_path / "nope.csv"), "--db-dsn", "host=unused"])
        assert result.exit_code == 1
        assert "does not exist" in result.output

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "rows.json"
        path.write_text("{not json", encoding="utf-8")
        result = _invoke(["--mode", "json_upload", "--json-path", str(path)])
        assert result.exit_code == 1
        assert "is not valid JSON" in result.output

    def test_json_wrong_shape(self, tmp_path):
        path = tmp_path / "rows.json"
        path.write_text(json.dumps({"user_email": "a@example.com"}), encoding="utf-8")
        result = _invoke(["--mode", "json_upload", "--json-path", str(path)])
        assert result.exit_code == 1
        assert "JSON array of row objects" in result.output

    def test_requires_dsn(self, tmp_path):
        path = tmp_path / "grants.csv"
        path.write_text(csv_template(), encoding="utf-8")
        result = _invoke(["--csv-path", str(path)])
        assert result.exit_code == 1
        assert "ACCESS_DB_DSN is required" in result.output

    def test_invalid_settings(self, tmp_path):
        config = tmp_path / "bad.yml"
        config.write_text("workers: 2\n", encoding="utf-8")
        path = tmp_path / "grants.csv"
        path.write_text(csv_template(), encoding="utf-8")
        result = _invoke(["--csv-path", str(path), "--config-path", str(config)])
        assert result.exit_code == 1
        assert "invalid settings" in result.output
