# SPDX-License-Identifier: Apache-2.0
"""Click CLI entry point. Install with: pip install . then recboard --help."""
import json

import click

from recboard.config import settings
from recboard.core.exceptions import RecBoardError
from recboard.database import create_db_and_tables, make_engine, make_store
from recboard.services import assignment_service, audit_service, settings_service


@click.group()
@click.option(
    "--database-url",
    default=settings.database_url,
    envvar="DATABASE_URL",
    show_default=True,
    help="Record store database URL",
)
@click.pass_context
def cli(ctx, database_url):
    """Protocol review engine admin commands."""
    ctx.ensure_object(dict)
    engine = make_engine(database_url)
    create_db_and_tables(engine)
    ctx.obj["store"] = make_store(engine)


def _describe(exc: RecBoardError) -> str:
    details = [f"{f['field']}: {f['message']}" for f in exc.extra.get("fields", [])]
    return "; ".join([exc.message, *details])


@cli.command("init-settings")
@click.argument("user_id")
@click.pass_context
def init_settings(ctx, user_id):
    """Create baseline settings records for USER_ID (safe to re-run)."""
    try:
        result = settings_service.initialize_user_settings(ctx.obj["store"], user_id)
    except RecBoardError as exc:
        raise click.ClickException(_describe(exc)) from exc
    for path in result["created"]:
        click.echo(f"created  {path}")
    for path in result["existing"]:
        click.echo(f"exists   {path}")


@cli.command("check-overdue")
@click.option("--protocol-id", default=None, help="Limit to one protocol")
@click.pass_context
def check_overdue(ctx, protocol_id):
    """List pending assignments past their deadline."""
    overdue = assignment_service.list_overdue_assignments(ctx.obj["store"], protocol_id=protocol_id)
    if not overdue:
        click.echo("No overdue assignments.")
        return
    for item in overdue:
        a = item["assignment"]
        click.echo(
            f"{a['protocol_id']}  slot {a['slot']}  {a['reviewer_name'] or a['reviewer_id']}"
            f"  {item['days_overdue']} days overdue"
        )


@cli.command("verify-audit")
@click.argument("protocol_id")
@click.pass_context
def verify_audit(ctx, protocol_id):
    """Recompute the audit hash chain of PROTOCOL_ID."""
    result = audit_service.verify_audit_chain(ctx.obj["store"], protocol_id)
    click.echo(json.dumps(result))
    if not result["valid"]:
        raise SystemExit(1)


def main():
    """Entry point for console_scripts."""
    cli(obj={})


if __name__ == "__main__":
    main()
