"""
Tests for kblookup/cli.py

Runs main() with argument lists against a temporary database and checks
output and exit codes.
"""
import json

import pytest

from kblookup import cli
from kblookup import config as config_module


@pytest.fixture
def db_path(tmp_path, monkeypatch, plants_yaml):
    """A database file with the plants site, and a fresh global config."""
    monkeypatch.setattr(config_module, "_config", None)
    monkeypatch.chdir(tmp_path)
    site_file = tmp_path / "plants.yaml"
    site_file.write_text(plants_yaml)
    path = str(tmp_path / "cli.db")
    cli.main(["--db", path, "-q", "import", str(site_file)])
    return path


def run_json(capsys, *argv):
    capsys.readouterr()
    cli.main(["-o", "json", *argv])
    return json.loads(capsys.readouterr().out)


class TestEval:
    """Test the eval command."""

    def test_json_output(self, db_path, capsys):
        data = run_json(capsys, "--db", db_path, "eval", "this.ancestors()", "--site", "plants", "--entry", "pine")
        assert data["expressionNormalized"] == "ancestors(this)"
        assert data["resultValue"]["totalCount"] == 5
        assert data["resultValue"]["values"][0]["id"] == "_PINUS"
        assert data["resultValue"]["values"][0]["type"] == "AnnotatedEntry"

    def test_page_size(self, db_path, capsys):
        data = run_json(capsys, "--db", db_path, "eval", "ancestors(E[_PINE])", "--site", "plants", "--page-size", "2")
        assert len(data["resultValue"]["values"]) == 2
        assert data["resultValue"]["pageSize"] == 2

    def test_table_output(self, db_path, capsys):
        cli.main(["--db", db_path, "-o", "table", "eval", "related(this, via=RT[_HAS_A])",
                  "--site", "plants", "--entry", "pine"])
        out = capsys.readouterr().out
        assert "_BARK" in out
        assert "_SEED" in out

    def test_table_shows_notes(self, db_path, capsys):
        cli.main(["--db", db_path, "-o", "table", "eval", 'related(E[_PINUS], via=RT[_HAS_A], direction="from")',
                  "--site", "plants"])
        out = capsys.readouterr().out
        assert "Note" in out
        assert "seed-bearing" in out

    def test_parse_error_exit_code(self, db_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--db", db_path, "eval", "this.", "--site", "plants"])
        assert exc_info.value.code == 2
        assert "Invalid lookup expression" in capsys.readouterr().out

    def test_evaluation_error_exit_code(self, db_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--db", db_path, "eval", "this", "--site", "plants"])
        assert exc_info.value.code == 1
        assert "Lookup failed" in capsys.readouterr().out

    def test_capture_errors(self, db_path, capsys):
        data = run_json(capsys, "--db", db_path, "eval", "count(this)", "--site", "plants",
                        "--entry", "pine", "--capture-errors")
        assert data["resultValue"]["type"] == "Error"

    def test_unknown_site(self, db_path):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--db", db_path, "eval", "null", "--site", "animals"])
        assert exc_info.value.code == 1

    def test_site_from_config(self, db_path, capsys, monkeypatch):
        monkeypatch.setenv("KBLOOKUP_DEFAULT_SITE", "plants")
        monkeypatch.setattr(config_module, "_config", None)
        data = run_json(capsys, "--db", db_path, "eval", "count(descendants(E[_PINALES]))")
        assert data["resultValue"] == {"type": "Integer", "value": "3"}


class TestOtherCommands:
    """Test parse, sites and import."""

    def test_parse(self, capsys, monkeypatch):
        monkeypatch.setattr(config_module, "_config", None)
        cli.main(["-o", "table", "parse", "this.andAncestors().related(via=RT[_x])"])
        assert capsys.readouterr().out.strip() == "related(andAncestors(this), via=RT[_x])"

    def test_parse_error(self, monkeypatch):
        monkeypatch.setattr(config_module, "_config", None)
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["parse", "ancestors(this"])
        assert exc_info.value.code == 2

    def test_sites(self, db_path, capsys):
        data = run_json(capsys, "--db", db_path, "sites")
        assert data[0]["key"] == "plants"
        assert data[0]["entries"] == 11

    def test_import_error(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config_module, "_config", None)
        bad = tmp_path / "bad.yaml"
        bad.write_text("site: {key: x}\nentries: [{name: A, type: Nope}]\n")
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--db", str(tmp_path / "x.db"), "import", str(bad)])
        assert exc_info.value.code == 1

    @pytest.mark.parametrize("content", [
        "site: {key: x\nentries: [",
        "site: {key: x}\nentries: [foo]\n",
    ])
    def test_malformed_import(self, tmp_path, monkeypatch, capsys, content):
        monkeypatch.setattr(config_module, "_config", None)
        bad = tmp_path / "bad.yaml"
        bad.write_text(content)
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--db", str(tmp_path / "x.db"), "import", str(bad)])
        assert exc_info.value.code == 1
        assert "Import error" in capsys.readouterr().out
