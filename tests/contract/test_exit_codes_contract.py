from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from canfs_grid.cli.__main__ import EXIT_FATAL, EXIT_PARTIAL_FAILURE, EXIT_SUCCESS_ALL
from canfs_grid.cli.__main__ import main as cli_main
from canfs_grid.db.gateway import FetchError
from canfs_grid.logging.init import reset_logging

"""Exit code contract: 0 all views exported, 1 fatal, 2 some views failed."""


def test_exit_code_values():
    assert (EXIT_SUCCESS_ALL, EXIT_FATAL, EXIT_PARTIAL_FAILURE) == (0, 1, 2)


def test_exit_code_success(write_config, temp_workdir: Path, store):
    reset_logging()
    with patch("canfs_grid.cli.__main__._open_store", return_value=store):
        assert cli_main(["export"]) == EXIT_SUCCESS_ALL


def test_exit_code_missing_config(temp_workdir: Path, capsys):
    reset_logging()
    code = cli_main(["--config", "config/missing.yml", "export"])
    assert code == EXIT_FATAL
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_invalid_config(write_config, temp_workdir: Path, capsys):
    write_config.write_text("timezone: UTC\n", encoding="utf-8")
    reset_logging()
    assert cli_main(["export"]) == EXIT_FATAL
    assert "config validation failed" in capsys.readouterr().out


def test_exit_code_partial_failure(write_config, temp_workdir: Path, store):
    store.table("client_registrations").fail_next("fetch", FetchError("boom"))
    reset_logging()
    with patch("canfs_grid.cli.__main__._open_store", return_value=store):
        code = cli_main(["export", "--view", "upcoming_meetings", "--view", "progress_summary"])
    assert code == EXIT_PARTIAL_FAILURE
