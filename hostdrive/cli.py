"""hostdrive CLI entry point using Click.

Commands:
    hostdrive replay <scenario.yaml> [--max-events N] [--verbose]  — play a scenario against a simulated host
    hostdrive config show                                           — show the current configuration
    hostdrive config set settings <value>                           — set the settings string forwarded to agents
    hostdrive config set time-limit <ms>                            — set the session time limit
    hostdrive config set log-level <level>                          — set the log level
"""

from pathlib import Path

import click

from hostdrive import fmt
from hostdrive.paths import home as _home


def _get_home(ctx: click.Context) -> Path:
    """Resolve hostdrive home from context or default."""
    return _home(ctx.obj.get("home_override") if ctx.obj else None)


@click.group()
@click.option(
    "--home", "home_override", type=click.Path(path_type=Path), default=None,
    envvar="HOSTDRIVE_HOME",
    help="Override hostdrive home directory (default: ~/.hostdrive).",
)
@click.pass_context
def main(ctx: click.Context, home_override: Path | None) -> None:
    """hostdrive — session engine for agents driving a remote host."""
    ctx.ensure_object(dict)
    ctx.obj["home_override"] = home_override


# ──────────────────────────────────────────────────────────────
# hostdrive replay
# ──────────────────────────────────────────────────────────────

@main.command()
@click.argument("scenario_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--max-events", type=int, default=10_000, help="Stop after this many host events.")
@click.option("--verbose", "-v", is_flag=True, help="Print the status of every response.")
@click.pass_context
def replay(ctx: click.Context, scenario_path: Path, max_events: int, verbose: bool) -> None:
    """Play SCENARIO_PATH against a simulated host with its scripted agent."""
    from hostdrive.config import get_log_level, get_settings, get_time_limit
    from hostdrive.logging_setup import configure_logging
    from hostdrive.models import ContinueSession
    from hostdrive.replay import ReplayError, ScenarioError, load_scenario, run_scenario

    hc_home = _get_home(ctx)
    configure_logging(hc_home, console=verbose, level=get_log_level(hc_home))

    try:
        scenario = load_scenario(scenario_path)
    except ScenarioError as e:
        fmt.error(str(e))
        raise SystemExit(1)

    # Scenario values win; fall back to the configured ones
    overrides = {}
    if scenario.settings is None:
        overrides["settings"] = get_settings(hc_home)
    if scenario.time_limit_ms is None:
        overrides["time_limit_ms"] = get_time_limit(hc_home)
    if overrides:
        from dataclasses import replace
        scenario = replace(scenario, **overrides)

    fmt.header(f"Replaying {scenario.name}")
    try:
        report = run_scenario(scenario, max_events=max_events)
    except ReplayError as e:
        fmt.error(str(e))
        raise SystemExit(1)

    if verbose:
        for response in report.responses:
            task = response.start_task if isinstance(response, ContinueSession) else None
            if task is not None:
                fmt.info(f"{task.task_id}: {task.description.splitlines()[0]}")
            fmt.dim(response.status_text)

    fmt.info(f"Events: {report.events}, tasks: {len(report.tasks)}, "
             f"simulated time: {fmt.format_ms(report.end_time_ms)}")
    fmt.info(f"Hosts created: {report.hosts_created}, released: {report.hosts_released}")
    if report.average_snapshot_ms is not None:
        fmt.info(f"Average snapshot duration: {fmt.format_ms(report.average_snapshot_ms)}")
    if report.finished:
        fmt.success("Session finished")
        click.echo(report.finish_status or "")
    else:
        fmt.warn(f"Session still running after {report.events} events")


# ──────────────────────────────────────────────────────────────
# hostdrive config show / set
# ──────────────────────────────────────────────────────────────

@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.group("set")
def config_set() -> None:
    """Set a configuration value."""
    pass


@config_set.command("settings")
@click.argument("value")
@click.pass_context
def config_set_settings(ctx: click.Context, value: str) -> None:
    """Set the settings string forwarded to agents."""
    from hostdrive.config import set_settings

    set_settings(_get_home(ctx), value)
    click.echo(f"Settings set to: {value}")


@config_set.command("time-limit")
@click.argument("ms", type=click.IntRange(min=0))
@click.pass_context
def config_set_time_limit(ctx: click.Context, ms: int) -> None:
    """Set the session time limit in milliseconds."""
    from hostdrive.config import set_time_limit

    set_time_limit(_get_home(ctx), ms)
    click.echo(f"Time limit set to: {ms} ms")


@config_set.command("log-level")
@click.argument("level")
@click.pass_context
def config_set_log_level(ctx: click.Context, level: str) -> None:
    """Set the log level (DEBUG, INFO, WARNING, ...)."""
    from hostdrive.config import set_log_level

    try:
        set_log_level(_get_home(ctx), level)
    except ValueError as e:
        fmt.error(str(e))
        raise SystemExit(1)
    click.echo(f"Log level set to: {level.upper()}")


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the current configuration."""
    from hostdrive.config import get_log_level, get_settings, get_time_limit

    hc_home = _get_home(ctx)
    settings = get_settings(hc_home)
    time_limit = get_time_limit(hc_home)

    click.echo(f"Home:       {hc_home}")
    click.echo(f"Settings:   {settings if settings is not None else '(not set)'}")
    click.echo(f"Time limit: {f'{time_limit} ms' if time_limit is not None else '(not set)'}")
    click.echo(f"Log level:  {get_log_level(hc_home)}")


if __name__ == "__main__":
    main()
