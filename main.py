#!/usr/bin/env python3
"""hostwatch - CLI Entry Point."""
import sys
import json
import threading
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()

SEVERITY_STYLES = {
    "low": "cyan",
    "medium": "yellow",
    "high": "bold dark_orange",
    "critical": "bold white on red",
}

LEVEL_STYLES = {
    "TRACE": "dim",
    "DEBUG": "dim",
    "INFO": "",
    "WARN": "yellow",
    "ERROR": "red",
    "FATAL": "bold white on red",
}


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config
    from models.database import Database
    from logs.discovery import LogDiscovery
    from logs.search import LogSearch
    from monitor.metrics import MetricsProvider
    from alerts.pubsub import AlertBroadcaster
    from alerts.channels import NotificationDispatcher, build_channels
    from alerts.engine import AlertEngine
    from alerts.rules_manager import RulesManager

    config = load_config(config_path)
    log_cfg = config.get("logging", {})
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))

    db = Database(config["database"]["path"])
    db.connect()

    discovery = LogDiscovery(config.get("apps") or [])
    search_cfg = config.get("search", {})
    search = LogSearch(
        discovery,
        max_files=search_cfg.get("max_files", 5),
        max_scan=search_cfg.get("max_scan", 2000),
        timeout=search_cfg.get("timeout_seconds", 10),
        max_count_per_file=search_cfg.get("max_count_per_file", 500),
    )

    metrics = MetricsProvider()
    broadcaster = AlertBroadcaster()
    dispatcher = NotificationDispatcher(build_channels(config))
    alert_engine = AlertEngine(db, search, metrics, dispatcher, broadcaster, config)

    rules = RulesManager(db, on_change=alert_engine.reload_rules, broadcaster=broadcaster)
    rules.seed_defaults(config)
    alert_engine.reload_rules()

    return {
        "config": config, "db": db, "discovery": discovery, "search": search,
        "metrics": metrics, "broadcaster": broadcaster, "dispatcher": dispatcher,
        "alert_engine": alert_engine, "rules": rules,
    }


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="hostwatch")
@click.pass_context
def cli(ctx, config_path, verbose):
    """hostwatch - Log search, live tail and alerting for a single host."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


def _severity(sev):
    style = SEVERITY_STYLES.get(sev, "")
    return f"[{style}]{sev}[/]" if style else sev


# ──────────────────────────────────────────────────────
# SERVE
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--port", default=None, type=int, help="Port to bind to (default: server.port)")
@click.option("--host", default=None, type=str, help="Host to bind to (default: server.host)")
@click.option("--no-monitors", is_flag=True, help="Serve the API without running alert monitors")
@click.pass_context
def serve(ctx, port, host, no_monitors):
    """Run the JSON API and the background alert monitors."""
    from web.app import create_app
    from monitor.scheduler import EngineScheduler

    c = _get_components(ctx)
    server_cfg = c["config"].get("server", {})
    host = host or server_cfg.get("host", "0.0.0.0")
    port = port or server_cfg.get("port", 7005)

    app = create_app(c["config"], c)

    scheduler = None
    if not no_monitors:
        scheduler = EngineScheduler(c["alert_engine"], c["config"]["alerts"].get("intervals"))
        scheduler.start()

    console.print("\n[bold cyan]hostwatch[/bold cyan]\n")
    console.print(f"  API:      http://{host}:{port}/api")
    console.print(f"  Monitors: {'off' if no_monitors else 'running'}")
    console.print("\n  Press Ctrl+C to stop.\n")

    try:
        app.run(host=host, port=port, debug=False, threaded=True)
    finally:
        if scheduler:
            scheduler.stop()
        c["dispatcher"].shutdown(wait=False)
        c["db"].close()


# ──────────────────────────────────────────────────────
# LOGS
# ──────────────────────────────────────────────────────
@cli.group()
def logs():
    """Log discovery, search and live tail."""
    pass


@logs.command("apps")
@click.pass_context
def logs_apps(ctx):
    """List configured apps and their logs."""
    c = _get_components(ctx)
    table = Table(title="Configured Logs", show_header=True)
    table.add_column("App")
    table.add_column("Log")
    table.add_column("Path", style="dim")
    for app_name, log_name, path in c["discovery"].entries():
        table.add_row(app_name, log_name, path)
    console.print(table)


@logs.command("files")
@click.argument("app_name")
@click.argument("log_name")
@click.pass_context
def logs_files(ctx, app_name, log_name):
    """List the files behind one configured log, newest first."""
    from utils.errors import HostwatchError
    c = _get_components(ctx)
    try:
        files = c["discovery"].list_files(app_name, log_name)
    except HostwatchError as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)

    if not files:
        console.print("[dim]No files found[/dim]")
        return
    table = Table(title=f"{app_name}/{log_name}", show_header=True)
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("Modified", style="dim")
    table.add_column("Archive")
    for f in files:
        table.add_row(f.name, f"{f.size:,}", f.mod_time.astimezone().strftime("%Y-%m-%d %H:%M:%S"),
                      "✓" if f.is_archive else "")
    console.print(table)


@logs.command("search")
@click.argument("query", default="")
@click.option("--app", "app_name", default="", help="Restrict to one app")
@click.option("--log", "log_name", default="", help="Restrict to one log")
@click.option("--file", "specific_file", default="", help="Search a single file")
@click.option("--level", default="", type=click.Choice(["", "TRACE", "DEBUG", "INFO", "WARN", "ERROR", "FATAL"],
                                                       case_sensitive=False), help="Only this level")
@click.option("--limit", default=100, type=int, help="Maximum results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def logs_search(ctx, query, app_name, log_name, specific_file, level, limit, as_json):
    """Search logs for QUERY (extended regex, case-insensitive)."""
    from utils.errors import HostwatchError
    c = _get_components(ctx)
    try:
        results = c["search"].search(query, app_name, log_name, specific_file, level, limit)
    except HostwatchError as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in results], indent=2))
        return
    if not results:
        console.print("[dim]No matches[/dim]")
        return

    table = Table(title=f"{len(results)} result(s)", show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("App")
    table.add_column("Level")
    table.add_column("Message")
    for r in results:
        style = LEVEL_STYLES.get(r.level, "")
        level_str = f"[{style}]{r.level}[/]" if style else r.level
        table.add_row(r.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S"), r.app, level_str, r.message[:120])
    console.print(table)


@logs.command("tail")
@click.argument("app_name")
@click.argument("log_name")
@click.option("--file", "file_name", default=None, help="Follow this file instead of the newest live one")
@click.pass_context
def logs_tail(ctx, app_name, log_name, file_name):
    """Follow a log like tail -F until Ctrl+C."""
    from logs.stream import stream_log
    from utils.errors import HostwatchError
    c = _get_components(ctx)
    try:
        path = c["discovery"].resolve_stream_target(app_name, log_name, file_name)
    except HostwatchError as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)

    console.print(f"[dim]Following {path} (Ctrl+C to stop)[/dim]")
    stop = threading.Event()
    try:
        stream_log(path, lambda line: console.print(line, markup=False, highlight=False), stop)
    except KeyboardInterrupt:
        stop.set()


# ──────────────────────────────────────────────────────
# ALERTS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Alert management."""
    pass


@alerts.command("check")
@click.pass_context
def alerts_check(ctx):
    """Evaluate all enabled alert rules once."""
    c = _get_components(ctx)
    before = {a.id for a in c["db"].get_alert_history(limit=200)}
    fired = c["alert_engine"].run_once()
    total = sum(fired.values())
    if total:
        console.print(f"[bold yellow]{total} alert(s) triggered:[/bold yellow]")
        for a in c["db"].get_alert_history(limit=total + 10):
            if a.id not in before:
                console.print(f"  [{_severity(a.severity)}] {a.type}: {a.message}")
    else:
        console.print("[green]All clear - no alerts triggered[/green]")
    c["dispatcher"].shutdown(wait=True)


@alerts.command("history")
@click.option("--limit", default=50, help="Number of alerts to show")
@click.pass_context
def alerts_history(ctx, limit):
    """Show past alerts."""
    c = _get_components(ctx)
    recent = c["db"].get_alert_history(limit=limit)
    if not recent:
        console.print("[dim]No alerts in history[/dim]")
        return
    table = Table(title="Alert History", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Time", style="dim")
    table.add_column("Severity")
    table.add_column("Type")
    table.add_column("Message")
    table.add_column("Resolved")
    for a in recent:
        table.add_row(str(a.id), a.timestamp.astimezone().strftime("%Y-%m-%d %H:%M"), _severity(a.severity),
                      a.type, a.message[:80], "[green]✓[/green]" if a.resolved else "")
    console.print(table)


@alerts.command("rules")
@click.pass_context
def alerts_rules(ctx):
    """List all alert rules."""
    c = _get_components(ctx)
    rules = c["rules"].list_rules()
    table = Table(title="Alert Rules", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Condition")
    table.add_column("Severity")
    table.add_column("Enabled")
    table.add_column("Last Triggered", style="dim")
    for r in rules:
        if r.type == "system_metric":
            cond = f"{r.condition} {r.threshold:g}%"
        else:
            cond = r.log_pattern or "(default exception patterns)"
            scope = "/".join(p for p in (r.app_filter, r.log_filter) if p)
            if scope:
                cond += f" in {scope}"
        last = r.last_triggered.astimezone().strftime("%Y-%m-%d %H:%M") if r.last_triggered else "never"
        table.add_row(r.id, r.name, r.type, cond, _severity(r.severity),
                      "[green]✓[/green]" if r.enabled else "[red]✗[/red]", last)
    console.print(table)


@alerts.command("test")
@click.pass_context
def alerts_test(ctx):
    """Record a test alert."""
    c = _get_components(ctx)
    alert = c["alert_engine"].trigger_test_alert()
    console.print(f"[green]✓[/green] Test alert #{alert.id} recorded")


@alerts.command("resolve")
@click.argument("alert_id", type=int)
@click.pass_context
def alerts_resolve(ctx, alert_id):
    """Mark an alert as resolved."""
    from utils.errors import NotFound
    c = _get_components(ctx)
    try:
        c["alert_engine"].resolve_alert(alert_id)
    except NotFound as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)
    console.print(f"[green]✓[/green] Alert #{alert_id} resolved")


# ──────────────────────────────────────────────────────
# RULES
# ──────────────────────────────────────────────────────
@cli.group()
def rules():
    """Alert rule maintenance."""
    pass


@rules.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def rules_import(ctx, path):
    """Import rules from a YAML file with a top-level 'rules' list."""
    c = _get_components(ctx)
    imported, skipped = c["rules"].import_rules(path)
    console.print(f"[green]✓[/green] Imported {len(imported)} rule(s)")
    if skipped:
        console.print(f"[yellow]![/yellow] Skipped {skipped} invalid rule(s), see log for details")


@rules.command("toggle")
@click.argument("rule_id")
@click.option("--enable/--disable", default=True, help="Enable or disable the rule")
@click.pass_context
def rules_toggle(ctx, rule_id, enable):
    """Enable or disable a rule."""
    from utils.errors import NotFound
    c = _get_components(ctx)
    try:
        rule = c["rules"].toggle_rule(rule_id, enable)
    except NotFound as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)
    console.print(f"[green]✓[/green] {rule.name} {'enabled' if rule.enabled else 'disabled'}")


@rules.command("delete")
@click.argument("rule_id")
@click.confirmation_option(prompt="Delete this rule?")
@click.pass_context
def rules_delete(ctx, rule_id):
    """Delete a rule."""
    from utils.errors import NotFound
    c = _get_components(ctx)
    try:
        c["rules"].delete_rule(rule_id)
    except NotFound as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)
    console.print(f"[green]✓[/green] Rule {rule_id} deleted")


# ──────────────────────────────────────────────────────
# DEDUP
# ──────────────────────────────────────────────────────
@cli.group()
def dedup():
    """Processed log entry fingerprints."""
    pass


@dedup.command("stats")
@click.pass_context
def dedup_stats(ctx):
    """Show how many fingerprints are stored."""
    c = _get_components(ctx)
    count = c["alert_engine"].dedup.count()
    if count is None:
        console.print("[red]✗[/red] Could not read processed entries")
        sys.exit(1)
    console.print(f"{count:,} processed log entries "
                  f"(retention {c['alert_engine'].retention_hours}h)")


@dedup.command("cleanup")
@click.option("--hours", default=None, type=int, help="Remove entries older than this (default: retention)")
@click.pass_context
def dedup_cleanup(ctx, hours):
    """Remove old fingerprints now."""
    c = _get_components(ctx)
    hours = hours if hours is not None else c["alert_engine"].retention_hours
    removed = c["alert_engine"].dedup.cleanup(hours)
    console.print(f"[green]✓[/green] Removed {removed} entries older than {hours}h")


if __name__ == "__main__":
    cli()
