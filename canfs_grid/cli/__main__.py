from __future__ import annotations

import argparse
import asyncio
import sys
import time
from datetime import UTC, date, datetime
from pathlib import Path

from dotenv import load_dotenv

from canfs_grid.config.loader import ConfigError, GridConfig, load_config
from canfs_grid.db.gateway import RemoteStore
from canfs_grid.db.postgres import PostgresStore
from canfs_grid.grid.view_model import GridViewModel
from canfs_grid.logging.init import log_summary, set_debug, setup_logging
from canfs_grid.logging.notices import NoticeBoard
from canfs_grid.models.export_result import ExportResult, ViewExport
from canfs_grid.services.export import ExportError, export_view
from canfs_grid.services.progress import ProgressTracker
from canfs_grid.services.summary import render_summary_line
from canfs_grid.services.views import (
    UPCOMING_MEETINGS,
    VIEWS,
    default_upcoming_window,
    get_view,
    upcoming_export_name,
    upcoming_ranges,
)

"""CLI entrypoint.

- ``export``: fetch one or more views and write each to ``.xlsx``
- ``inspect``: print the first page of a view

Connection settings: ``.env`` (loaded with override) first, then the
``database`` section of the config file.
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2

DEFAULT_CONFIG = Path("config/grid.yml")


def _load_env_file(path: Path, override: bool = True) -> None:
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _open_store(cfg: GridConfig) -> PostgresStore:
    return PostgresStore(cfg.database.resolve_dsn())


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="canfs-grid", description="Back-office grid views: export and inspect")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG, help="YAML config path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    ex = sub.add_parser("export", help="Write views to .xlsx")
    ex.add_argument(
        "--view",
        dest="views",
        action="append",
        choices=sorted(VIEWS),
        help="View to export (repeatable, default: upcoming_meetings)",
    )
    ex.add_argument("--start", type=date.fromisoformat, help="Upcoming range start (YYYY-MM-DD)")
    ex.add_argument("--end", type=date.fromisoformat, help="Upcoming range end, inclusive (YYYY-MM-DD)")
    ex.add_argument("--output", type=Path, help="Output directory (default: export_directory)")

    ins = sub.add_parser("inspect", help="Print the first page of a view")
    ins.add_argument("view", choices=sorted(VIEWS))
    ins.add_argument("--search", default="", help="Free-text search")
    ins.add_argument("--page", type=int, default=1, help="1-based page number")
    return p.parse_args(argv)


async def _export_views(
    cfg: GridConfig,
    store: RemoteStore,
    names: list[str],
    *,
    start: date,
    end: date,
    output: Path,
    notices: NoticeBoard,
) -> ExportResult:
    started = datetime.now(UTC)
    exports: list[ViewExport] = []
    with ProgressTracker(len(names)) as progress:
        for name in names:
            progress.start_view(name)
            t0 = time.time()
            view = GridViewModel(get_view(name), store, config=cfg, notices=notices)
            if name == UPCOMING_MEETINGS.name:
                ok = await view.set_ranges(upcoming_ranges(start, end, cfg.tzinfo), match_any=True)
                filename = upcoming_export_name(start, end)
            else:
                ok = await view.refresh()
                filename = None
            if not ok:
                latest = notices.latest_error
                message = latest.message if latest is not None else "fetch failed"
                exports.append(ViewExport(name, 0, time.time() - t0, error=message))
                progress.finish_view()
                continue
            rows = len(view.all_rows())
            try:
                path = export_view(view, output, filename=filename)
            except ExportError as e:
                notices.error(name, e)
                exports.append(ViewExport(name, 0, time.time() - t0, error=str(e)))
            else:
                exports.append(ViewExport(name, rows, time.time() - t0, path=path))
            progress.finish_view(rows)
    return ExportResult(started, datetime.now(UTC), tuple(exports))


async def _inspect(cfg: GridConfig, store: RemoteStore, name: str, search: str, page: int) -> int:
    view = GridViewModel(get_view(name), store, config=cfg)
    # no keystrokes to debounce here
    view.controller.set_search(search)
    if not await view.refresh():
        return EXIT_FATAL
    if page > 1:
        await view.jump_to(page)
    columns = view.column_views()
    print(f"VIEW: {name} page={view.page_index + 1}/{view.total_pages} rows={view.total_rows}")
    print("  " + " | ".join(c.label for c in columns))
    for row in view.render():
        print("  " + " | ".join(cell.display for cell in row.cells))
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # only read sys.argv when no list is given, so main([]) stays hermetic
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        set_debug(True)
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    notices = NoticeBoard(Path(cfg.notice_log_dir) if cfg.notice_log_dir else None)
    with _open_store(cfg) as store:
        if args.command == "inspect":
            code = asyncio.run(_inspect(cfg, store, args.view, args.search, args.page))
            if code != EXIT_SUCCESS_ALL:
                logger.error(f"inspect: could not load {args.view}")
            return code

        default_start, default_end = default_upcoming_window(datetime.now(cfg.tzinfo).date())
        start = args.start or default_start
        end = args.end or default_end
        if end < start:
            logger.error(f"export: end {end} is before start {start}")
            return EXIT_FATAL
        names = args.views or [UPCOMING_MEETINGS.name]
        output = args.output or Path(cfg.export_directory)
        result = asyncio.run(
            _export_views(cfg, store, names, start=start, end=end, output=output, notices=notices)
        )

    if notices.latest_error is not None:
        logger.info(f"notices written to {notices.flush()}")

    summary_line = render_summary_line(result)
    log_summary(summary_line[len("SUMMARY "):])

    if result.failed_views > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
