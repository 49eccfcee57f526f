"""Shared utilities for all CLI command modules.

Provides the Rich console instance, the hidden ``--home`` option and
the engine factory every command uses.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from ..config import FlowConfig
from ..engine import SyncEngine

console = Console()

home_option = click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    hidden=True,
    help="Home directory to sync from (development and tests).",
)


def build_engine(home: Optional[Path]) -> SyncEngine:
    """Build the configuration from the environment and wrap it in an engine."""
    return SyncEngine(FlowConfig.from_env(home=home))
