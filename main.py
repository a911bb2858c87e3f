#!/usr/bin/env python3
"""Alert Engine - CLI Entry Point."""
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
import yaml
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()

SEVERITY_STYLES = {"fatal": "bold red", "critical": "red", "warning": "yellow", "info": "blue"}


def _load(config_path=None, verbose=False):
    """Load config and rules, exiting with status 2 on any configuration error."""
    from utils.logger import setup_logging
    from config import load_config, ConfigError
    from alerts.rule_store import RuleStore

    try:
        config = load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise SystemExit(2)

    log_cfg = config.get("logging", {})
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))

    try:
        rules = RuleStore.from_file(config["rules"]["path"])
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(2)
    return config, rules


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from alerts.channels import build_channels
    from alerts.engine import Evaluator
    from monitor.metric_source import build_metric_source

    config, rules = _load(config_path, verbose)
    try:
        channels = build_channels(config["channels"])
        source = build_metric_source(config["metrics"])
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise SystemExit(2)

    evaluator = Evaluator.from_config(config, rules, source, channels)
    return {"config": config, "rules": rules, "channels": channels,
            "source": source, "evaluator": evaluator}


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="alertengine")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Alert Engine - metric rule evaluation, escalation and multi-channel notification."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


def _sev(severity):
    style = SEVERITY_STYLES.get(severity.value, "")
    return f"[{style}]{severity.value}[/{style}]" if style else severity.value


# ──────────────────────────────────────────────────────
# RUN / CHECK
# ──────────────────────────────────────────────────────
@cli.command()
@click.pass_context
def run(ctx):
    """Evaluate rules on the configured interval until interrupted."""
    from monitor.scheduler import EvaluationScheduler

    c = _get_components(ctx)
    interval = c["config"]["evaluator"]["interval_seconds"]
    console.print(f"[bold]alertengine {__version__}[/bold] - {len(c['rules'])} rules, "
                  f"every {interval}s. Ctrl-C to stop.")
    scheduler = EvaluationScheduler(c["evaluator"], interval)
    try:
        scheduler.run_forever()
    finally:
        c["evaluator"].close(timeout=c["config"]["routing"].get("dispatch_deadline_seconds", 10))


@cli.command()
@click.pass_context
def check(ctx):
    """Run a single evaluation pass and show what happened."""
    from utils.formatters import time_ago

    c = _get_components(ctx)
    evaluator = c["evaluator"]
    report = evaluator.run_once()
    results = evaluator.wait_for_dispatches(
        timeout=c["config"]["routing"].get("dispatch_deadline_seconds", 10) + 1)

    console.print(f"Evaluated {report.evaluated} rules at {report.started_at:%Y-%m-%d %H:%M:%S} UTC")
    if report.no_data:
        console.print(f"[yellow]No data:[/yellow] {', '.join(sorted(report.no_data))}")
    if report.errors:
        for name, err in report.errors:
            console.print(f"[red]Error in {name}:[/red] {err}")

    for inst in evaluator.state.active():
        console.print(f"[dim]{inst.state.value}: {inst.rule_name} since {time_ago(inst.start_time, report.started_at)}[/dim]")

    if not results:
        console.print("[green]All clear - nothing to notify[/green]")
    else:
        _print_dispatches(results)
    evaluator.close()


def _print_dispatches(results, title="Notifications"):
    table = Table(title=title, show_header=True)
    table.add_column("Kind")
    table.add_column("Rule")
    table.add_column("Severity")
    table.add_column("Delivered")
    table.add_column("Failed", style="red")
    for r in results:
        failed = ", ".join(f"{n} ({r.results[n].error})" for n in r.failed)
        if r.fallback_used:
            failed += f" -> fallback {'ok' if r.fallback_result.success else 'failed'}"
        table.add_row(r.alert.kind.value, r.alert.rule_name, _sev(r.alert.severity),
                      ", ".join(r.succeeded) or "-", failed or "")
    console.print(table)


# ──────────────────────────────────────────────────────
# RULES
# ──────────────────────────────────────────────────────
@cli.group()
def rules():
    """Alert rule inspection."""
    pass


@rules.command("list")
@click.pass_context
def rules_list(ctx):
    """List all configured alert rules."""
    from utils.formatters import format_duration

    _, store = _load(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    table = Table(title="Alert Rules", show_header=True)
    table.add_column("Name")
    table.add_column("Condition")
    table.add_column("For")
    table.add_column("Severity")
    table.add_column("Service")
    table.add_column("Summary", style="dim")
    for r in store:
        table.add_row(r.name, f"{r.metric} {r.condition.describe()}",
                      format_duration(r.condition.duration), _sev(r.severity), r.service,
                      r.annotations.get("summary", ""))
    console.print(table)


@rules.command("validate")
@click.argument("path", required=False)
@click.pass_context
def rules_validate(ctx, path):
    """Validate a rules file (default: the configured one). Exits 1 if invalid."""
    from config import load_config, ConfigError
    from alerts.rule_store import RuleStore, RuleConfigError

    if path is None:
        try:
            path = load_config(ctx.obj.get("config_path"))["rules"]["path"]
        except ConfigError as e:
            console.print(f"[red]Configuration error:[/red] {e}")
            raise SystemExit(2)
    try:
        store = RuleStore.from_file(path)
    except RuleConfigError as e:
        console.print(f"[red]✗[/red] {path}: {len(e.errors)} problem(s)")
        for err in e.errors:
            console.print(f"  - {err}")
        raise SystemExit(1)
    console.print(f"[green]✓[/green] {path}: {len(store)} rules OK")


# ──────────────────────────────────────────────────────
# REPLAY
# ──────────────────────────────────────────────────────
class _RecordingChannel:
    """Stand-in channel for replay; every send succeeds."""

    def __init__(self, name):
        self.name = name

    def send(self, alert):
        return True


@cli.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.option("--rules", "rules_path", default=None, help="Rules file (default: configured)")
@click.pass_context
def replay(ctx, script, rules_path):
    """Feed a scripted sequence of metric readings through the engine.

    SCRIPT is YAML with an optional `start` timestamp, a tick `interval`
    and a list of `steps`. Each step is one of `values: {metric: value}`
    (one tick; `repeat: N` for several), `advance: 10m`, or
    `suppress: {rule, duration}`. No real channel is contacted.
    """
    from alerts.engine import Evaluator
    from alerts.rule_store import RuleStore, RuleConfigError, parse_duration
    from monitor.metric_source import StaticMetricSource
    from utils.clock import ManualClock

    config, store = _load(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    if rules_path:
        try:
            store = RuleStore.from_file(rules_path)
        except RuleConfigError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(2)

    with open(script) as f:
        plan = yaml.safe_load(f) or {}

    start = plan.get("start")
    if isinstance(start, str):
        start = datetime.fromisoformat(start.replace("Z", "+00:00"))
    clock = ManualClock(start)
    try:
        interval = parse_duration(plan.get("interval", config["evaluator"]["interval_seconds"]))
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="interval")

    source = StaticMetricSource()
    channels = {name: _RecordingChannel(name) for name in ("chat", "email", "im", "console")}
    evaluator = Evaluator.from_config(config, store, source, channels, clock=clock)

    table = Table(title=f"Replay of {script}", show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("Kind")
    table.add_column("Rule")
    table.add_column("Severity")
    table.add_column("Level")
    table.add_column("Channels")

    for step in plan.get("steps", []):
        if "advance" in step:
            clock.advance(parse_duration(step["advance"]))
            continue
        if "suppress" in step:
            s = step["suppress"]
            evaluator.suppress(s["rule"], parse_duration(s.get("duration", "1h")), s.get("target"))
            continue
        for _ in range(int(step.get("repeat", 1))):
            source.clear()
            source.update(step.get("values", {}))
            report = evaluator.run_once()
            for result in evaluator.wait_for_dispatches():
                a = result.alert
                table.add_row(f"{clock.now():%H:%M:%S}", a.kind.value, a.rule_name, _sev(a.severity),
                              str(a.escalation_level), ", ".join(result.succeeded))
            for name in report.throttled:
                table.add_row(f"{clock.now():%H:%M:%S}", "[dim]throttled[/dim]", name, "", "", "")
            for name in report.suppressed:
                table.add_row(f"{clock.now():%H:%M:%S}", "[dim]suppressed[/dim]", name, "", "", "")
            clock.advance(interval)

    console.print(table)
    q = evaluator.quality.snapshot()
    console.print(f"Quality score: [bold]{q['score']:.1f}[/bold] "
                  f"({q['total_alerts']} raised, {q['resolved_alerts']} resolved)")
    evaluator.close()


# ──────────────────────────────────────────────────────
# CHANNELS
# ──────────────────────────────────────────────────────
@cli.group()
def channels():
    """Notification channel management."""
    pass


@channels.command("test")
@click.option("--channel", "only", default=None, help="Only test this channel")
@click.pass_context
def channels_test(ctx, only):
    """Send a test notification to each configured channel."""
    from models.alerts import Alert
    from models.enums import AlertKind, Severity

    c = _get_components(ctx)
    names = set(c["channels"])
    if only:
        if only not in names:
            console.print(f"[red]Channel not configured:[/red] {only}")
            raise SystemExit(1)
        names = {only}
    if not names:
        console.print("[yellow]No channels enabled.[/yellow]")
        return

    alert = Alert(
        rule_name="alertengine_test",
        kind=AlertKind.FIRING,
        severity=Severity.INFO,
        labels={"service": "alertengine"},
        annotations={"summary": "Test notification - please ignore"},
        timestamp=datetime.now(timezone.utc),
    )
    router = c["evaluator"].router
    result = router.dispatch(alert, names)
    _print_dispatches([result], title="Channel Test")
    router.close()
    if not result.success:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
