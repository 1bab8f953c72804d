"""
Unit tests for CLI module (progression_server/cli.py).

Tests cover:
- Command parsing
- init-db command
- history show / history verify against a temporary database
- config command
"""

import argparse
import json
import sqlite3
from unittest.mock import patch

import pytest

from progression_server import cli
from progression_server.ledger import LedgerWriter
from tests.factories import level_draft

# ============================================================================
# PARSER TESTS
# ============================================================================


@pytest.mark.unit
def test_main_without_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "usage" in capsys.readouterr().out.lower()


@pytest.mark.unit
def test_parser_history_show_arguments():
    args = cli.build_parser().parse_args(["history", "show", "abc", "--block-number", "3"])
    assert args.character_id == "abc"
    assert args.block_number == 3
    assert args.func is cli.cmd_history_show


@pytest.mark.unit
def test_parser_run_arguments():
    args = cli.build_parser().parse_args(["run", "--port", "9001"])
    assert args.port == 9001
    assert args.host is None


# ============================================================================
# INIT-DB COMMAND TESTS
# ============================================================================


@pytest.mark.unit
def test_cmd_init_db_success():
    with patch("progression_server.db.schema.init_database") as mock_init:
        result = cli.cmd_init_db(argparse.Namespace())

        assert result == 0
        mock_init.assert_called_once()


@pytest.mark.unit
def test_cmd_init_db_error(capsys):
    with patch("progression_server.db.schema.init_database", side_effect=OSError("disk full")):
        result = cli.cmd_init_db(argparse.Namespace())

    assert result == 1
    assert "disk full" in capsys.readouterr().err


@pytest.mark.db
def test_main_init_db_creates_tables(temp_db_path):
    assert cli.main(["init-db"]) == 0
    with sqlite3.connect(temp_db_path) as conn:
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master")}
    assert {"history_blocks", "characters"} <= tables


# ============================================================================
# RUN COMMAND TESTS
# ============================================================================


@pytest.mark.unit
def test_cmd_run_passes_host_and_port():
    with patch("progression_server.api.server.start_server") as mock_start:
        result = cli.cmd_run(argparse.Namespace(host="127.0.0.1", port=9001))

    assert result == 0
    mock_start.assert_called_once_with(host="127.0.0.1", port=9001)


@pytest.mark.unit
def test_cmd_run_reports_bind_error():
    with patch("progression_server.api.server.start_server", side_effect=OSError("in use")):
        assert cli.cmd_run(argparse.Namespace(host=None, port=None)) == 1


# ============================================================================
# HISTORY COMMAND TESTS
# ============================================================================


@pytest.mark.db
def test_history_show_prints_latest_block(store, character_id, capsys):
    record = LedgerWriter(store).append(character_id, level_draft(1, 2))

    result = cli.main(["history", "show", character_id])

    assert result == 0
    page = json.loads(capsys.readouterr().out)
    assert page["items"][0]["changes"][0]["id"] == record.id
    assert page["previousBlockNumber"] is None


@pytest.mark.db
def test_history_show_missing_history(test_db, character_id, capsys):
    assert cli.main(["history", "show", character_id]) == 1
    assert "No history" in capsys.readouterr().err


@pytest.mark.db
def test_history_verify_ok(store, character_id, capsys):
    LedgerWriter(store).append(character_id, level_draft(1, 2))

    assert cli.main(["history", "verify", character_id]) == 0
    assert "OK: 1 blocks, 1 records" in capsys.readouterr().out


@pytest.mark.db
def test_history_verify_empty(test_db, character_id):
    assert cli.main(["history", "verify", character_id]) == 0


@pytest.mark.db
def test_history_verify_corrupt(store, temp_db_path, character_id, capsys):
    LedgerWriter(store).append(character_id, level_draft(1, 2))
    with sqlite3.connect(temp_db_path) as conn:
        conn.execute("UPDATE history_blocks SET previous_block_id = 'dangling'")

    assert cli.main(["history", "verify", character_id]) == 2
    assert "CORRUPT" in capsys.readouterr().err


# ============================================================================
# CONFIG COMMAND TESTS
# ============================================================================


@pytest.mark.unit
def test_cmd_config_prints_summary(capsys):
    assert cli.cmd_config(argparse.Namespace()) == 0
    assert "SERVER CONFIGURATION" in capsys.readouterr().out
