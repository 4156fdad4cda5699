"""
Flask CLI commands for moderators and admins.

Usage:
    flask catalog-stats                 # Count tools (total / visible)
    flask check-text "some review"      # Run the review filter on a string
"""

from __future__ import annotations

import click
from flask import Flask
from flask.cli import with_appcontext


@click.command("catalog-stats")
@with_appcontext
def catalog_stats_command() -> None:
    """Print how many tools exist and how many are visible."""
    from steamfamily.services import supabase_client
    from steamfamily.utils.errors import BackendError

    try:
        counts = supabase_client.count_tools()
    except BackendError as e:
        click.echo(f"Error: {e}")
        raise SystemExit(1)

    click.echo(f"Tools: {counts['total']} total, {counts['visible']} visible")


@click.command("check-text")
@click.argument("text")
@with_appcontext
def check_text_command(text: str) -> None:
    """Show what the review filter does to TEXT (URL check + word masking)."""
    from steamfamily.extensions import get_content_filter

    content_filter = get_content_filter()
    allowed, reason = content_filter.check(text)

    if not allowed:
        click.echo(f"Rejected: {reason}")
        raise SystemExit(1)

    click.echo(f"Allowed: {content_filter.sanitize(text)}")


def register_commands(app: Flask) -> None:
    app.cli.add_command(catalog_stats_command)
    app.cli.add_command(check_text_command)
