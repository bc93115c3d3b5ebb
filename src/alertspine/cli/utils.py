"""
CLI utility helpers: consoles, config loading and table output.
"""

from __future__ import annotations

from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from alertspine.core.config import (
    AlertSpineSettings,
    ScheduledAlertConfig,
    apply_overrides,
    get_settings,
    load_scheduled_alert_config,
)
from alertspine.core.errors import ConfigurationError

console = Console()
err_console = Console(stderr=True)


def load_config(config_path: str | None) -> tuple[ScheduledAlertConfig, AlertSpineSettings]:
    """Load the job file (``--config`` or the settings default) with env overrides.

    Exits with code 1 on a configuration error.
    """
    settings = get_settings()
    path = config_path or settings.config_path
    try:
        config = load_scheduled_alert_config(path)
    except ConfigurationError as e:
        err_console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e
    return apply_overrides(config, settings), settings


def render_table(title: str, columns: list[str], rows: list[list[Any]]) -> None:
    table = Table(title=title, show_lines=False)
    for col in columns:
        table.add_column(col)
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row))
    console.print(table)
