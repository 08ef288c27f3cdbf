"""CLI entrypoint — claudedash stats, sessions, messages, serve."""

from __future__ import annotations

import json
import logging

import click

from claudedash.config import load_config
from claudedash.errors import ClaudeDashError
from claudedash.service import QueryService
from claudedash.stats import primary_model, total_tokens


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, indent=2))


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    """claudedash — usage statistics over Claude Code transcripts."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = load_config()


def _service(ctx: click.Context) -> QueryService:
    service = QueryService.from_config(ctx.obj)
    ctx.call_on_close(service.close)
    return service


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the raw ClaudeStats object.")
@click.pass_context
def stats(ctx: click.Context, as_json: bool):
    """Print usage statistics to terminal."""
    try:
        result = _service(ctx).get_claude_stats()
    except ClaudeDashError as e:
        click.echo(str(e), err=True)
        raise SystemExit(1)

    if as_json:
        _echo_json(result.to_dict())
        return

    if result.total_sessions == 0:
        click.echo(f"No sessions found in {ctx.obj.log_dir}")
        return

    first = result.first_session_date.date().isoformat() if result.first_session_date else "-"
    click.echo(
        f"{result.total_sessions} sessions, {result.total_messages} messages "
        f"since {first}. Total tokens: {total_tokens(result):,}."
    )
    click.echo(
        f"Today: {result.sessions_today} sessions, {result.messages_today} messages, "
        f"{result.tokens_today:,} tokens."
    )
    top = primary_model(result)
    if top:
        click.echo(f"Primary model: {top}")

    if result.model_usage:
        click.echo("\nBy model:")
        for model, usage in result.model_usage.items():
            click.echo(
                f"  {model}: {usage.input_tokens:,} in, {usage.output_tokens:,} out, "
                f"${usage.cost_usd:.2f} est."
            )

    if result.longest_session:
        ls = result.longest_session
        click.echo(
            f"\nLongest session: {ls.session_id} "
            f"({ls.duration // 60000} min, {ls.message_count} messages)"
        )
    if result.discarded_lines:
        click.echo(f"Skipped {result.discarded_lines} malformed lines.")


@cli.command()
@click.option("--project", default=None, help="Only sessions for this project path.")
@click.option("--limit", default=20, show_default=True, help="Maximum sessions to list.")
@click.option("--json", "as_json", is_flag=True, help="Print Session objects as JSON.")
@click.pass_context
def sessions(ctx: click.Context, project: str | None, limit: int, as_json: bool):
    """List recent sessions, optionally for one project."""
    service = _service(ctx)
    try:
        if project:
            found = service.get_project_sessions(project)[: max(limit, 0)]
        else:
            found = service.get_recent_sessions(limit)
    except ClaudeDashError as e:
        click.echo(str(e), err=True)
        raise SystemExit(1)

    if as_json:
        _echo_json([s.to_dict() for s in found])
        return

    if not found:
        click.echo(f"No sessions for project '{project}'." if project else "No sessions found.")
        return

    for s in found:
        click.echo(
            f"{s.last_activity:%Y-%m-%d %H:%M}  {s.id}  {s.project_name}  "
            f"{s.message_count} msgs  {s.total_tokens:,} tokens  {s.first_message}"
        )


@cli.command()
@click.argument("session_id")
@click.option("--tree", is_flag=True, help="Indent replies under the message they answer.")
@click.option("--json", "as_json", is_flag=True, help="Print Message objects as JSON.")
@click.pass_context
def messages(ctx: click.Context, session_id: str, tree: bool, as_json: bool):
    """Show the messages of one session."""
    service = _service(ctx)
    try:
        if tree:
            rows = service.get_session_tree(session_id)
        else:
            rows = [(0, m) for m in service.get_session_messages(session_id)]
    except ClaudeDashError as e:
        click.echo(str(e), err=True)
        raise SystemExit(1)

    if as_json:
        _echo_json([dict(m.to_dict(), depth=depth) if tree else m.to_dict() for depth, m in rows])
        return

    for depth, m in rows:
        indent = "  " * depth
        text = m.content.strip().replace("\n", " ")
        if len(text) > 120:
            text = text[:120] + "..."
        click.echo(f"{indent}[{m.timestamp:%H:%M:%S}] {m.role}: {text}")


@cli.command()
@click.option("--port", default=None, type=int, help="Port to serve on (default: 8787).")
@click.pass_context
def serve(ctx: click.Context, port: int | None):
    """Start the JSON API server."""
    config = ctx.obj
    serve_port = port or config.port

    from claudedash.web.app import create_app

    click.echo(f"Serving claudedash API at http://localhost:{serve_port}/api")
    click.echo("Press Ctrl+C to stop.")
    app = create_app(config)
    try:
        app.run(host="localhost", port=serve_port)
    finally:
        app.extensions["claudedash"].close()
