from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

One bar per CLI run, advanced once per exported view. Disabled when stdout
is not a terminal so piped output and CI logs stay free of control
sequences.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """Progress over the views of one export run."""

    def __init__(self, total_views: int, *, description: str = "Exporting views") -> None:
        self.total_views = total_views
        self.description = description
        self.current_view = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_views,
                desc=description,
                unit="view",
                leave=True,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def start_view(self, name: str) -> None:
        self.current_view += 1
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({name})")

    def finish_view(self, rows: int = 0) -> None:
        if self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_description(self.description)
            self.pbar.set_postfix(rows=rows)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
