"""Tests for the command-line entry point."""
from __future__ import annotations

import os
import signal
from unittest.mock import patch

import pytest

from vocab_drill.__main__ import _parse_flag, main
from vocab_drill.config import Settings
from vocab_drill.db import Database


@pytest.fixture
def cli_settings(tmp_path):
    settings = Settings(db_path=str(tmp_path / "cli.db"))
    with patch("vocab_drill.config.load_settings", return_value=settings):
        yield settings


def _run(*argv):
    with patch("sys.argv", ["vocab-drill", *argv]):
        main()


class TestParseFlag:
    def test_value(self):
        assert _parse_flag(["--port", "9000"], "--port", "8765") == "9000"

    def test_default(self):
        assert _parse_flag(["--port"], "--port", "8765") == "8765"


class TestCommands:
    def test_unknown_command(self, capsys):
        with pytest.raises(SystemExit):
            _run("fly")
        assert "Unknown command" in capsys.readouterr().out

    def test_import_requires_user(self, cli_settings, tmp_path):
        with pytest.raises(SystemExit):
            _run("import", str(tmp_path / "words.md"))

    def test_import(self, cli_settings, tmp_path, word_list_md, capsys):
        f = tmp_path / "words.md"
        f.write_text(word_list_md, encoding="utf-8")

        _run("import", str(f), "--user", "u1")
        _run("import", "--user", "u1", str(f))
        out = capsys.readouterr().out
        assert "4 words imported, 0 skipped" in out
        assert "0 words imported, 4 skipped" in out

        db = Database(cli_settings.db_full_path)
        assert db.count_items("u1") == 4
        assert db.count_items("u2") == 0
        db.close()

    def test_import_missing_file(self, cli_settings, tmp_path, capsys):
        _run("import", str(tmp_path / "nope.md"), "--user", "u1")
        assert "Skipping (not found)" in capsys.readouterr().out

    def test_stats(self, cli_settings, capsys):
        db = Database(cli_settings.db_full_path)
        db.insert_item("u1", "cat", ["კატა"])
        db.close()

        _run("stats", "--user", "u1")
        out = capsys.readouterr().out
        assert "Total words:        1" in out


class TestServerPid:
    @pytest.fixture
    def pid_file(self, tmp_path):
        path = tmp_path / "vocab-drill.pid"
        with patch("vocab_drill.__main__.PID_FILE", path):
            yield path

    def test_status_not_running(self, pid_file, capsys):
        _run("status")
        assert "not running" in capsys.readouterr().out

    def test_status_running(self, pid_file, capsys):
        pid_file.write_text(str(os.getpid()))
        _run("status")
        assert f"running (PID {os.getpid()})" in capsys.readouterr().out

    def test_stale_pid_file_removed(self, pid_file, capsys):
        pid_file.write_text("999999999")
        _run("status")
        assert "not running" in capsys.readouterr().out
        assert not pid_file.exists()

    def test_garbage_pid_file(self, pid_file, capsys):
        pid_file.write_text("not a pid")
        _run("stop")
        assert "not running" in capsys.readouterr().out

    def test_stop_signals_server(self, pid_file, capsys):
        pid_file.write_text("4321")
        with patch("vocab_drill.__main__.os.kill") as kill:
            _run("stop")
        kill.assert_called_with(4321, signal.SIGTERM)
        assert "PID 4321" in capsys.readouterr().out
        assert not pid_file.exists()
