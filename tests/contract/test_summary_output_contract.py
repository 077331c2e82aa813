from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import patch

from canfs_grid.cli.__main__ import main as cli_main
from canfs_grid.logging.init import reset_logging
from canfs_grid.models.export_result import ExportResult, ViewExport
from canfs_grid.services.summary import render_summary_line

"""SUMMARY line contract: one line, fixed key order."""

PATTERN = re.compile(
    r"^SUMMARY views=(\d+)/(\d+) success=(\d+) failed=(\d+) rows=(\d+) elapsed_sec=(\d+(?:\.\d+)?)$"
)


def test_summary_line_format():
    start = datetime(2024, 1, 1, tzinfo=UTC)
    result = ExportResult(start, start + timedelta(seconds=3.5), (ViewExport("all_records", 10, 3.4, path=Path("x")),))
    m = PATTERN.match(render_summary_line(result))
    assert m is not None
    assert m.groups() == ("1", "1", "1", "0", "10", "3.5")


def test_cli_prints_exactly_one_summary_line(write_config, temp_workdir: Path, store, client_rows, capsys):
    store.seed("client_registrations", client_rows)
    reset_logging()
    with patch("canfs_grid.cli.__main__._open_store", return_value=store):
        cli_main(["export", "--view", "all_records"])
    lines = [ln for ln in capsys.readouterr().out.splitlines() if ln.startswith("SUMMARY")]
    assert len(lines) == 1
    m = PATTERN.match(lines[0])
    assert m is not None
    assert m.group(5) == "3"
