"""Typer CLI root application."""

import typer

from collection_export.core.config import get_settings
from collection_export.core.logging import setup_logging

app = typer.Typer(name="collection-export", help="Export record store collections to CSV and XLSX")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir, json_logs=settings.log_json)


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from collection_export.cli.db_cmd import db_app
    from collection_export.cli.export_cmd import export_app

    app.add_typer(db_app, name="db", help="Record store setup commands")
    app.add_typer(export_app, name="export", help="Export commands")


_register_subcommands()
