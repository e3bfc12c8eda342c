"""CLI commands for amf."""

from __future__ import annotations

import shutil
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from amf import __version__
from amf.config.schema import Config

app = typer.Typer(
    name="amf",
    help="amf - tmux workspaces for coding agents",
)
console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"amf v{__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """amf entrypoint; runs the dashboard when no command is given."""
    del version
    if ctx.invoked_subcommand is None:
        ui(store=None)


# ---------------------------------------------------------------------------
# Shared setup
# ---------------------------------------------------------------------------


def _load_config() -> Config:
    from amf.config.loader import load_config
    from amf.utils.helpers import setup_logging

    config = load_config()
    setup_logging(config.log_file, config.log_level)
    return config


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(1)


def _build_context(config: Config, store_path: Path | None = None):
    """Load the store and wire the managers; exits with a red error on failure."""
    from amf.runtime.tmux import TmuxManager
    from amf.runtime.worktree import WorktreeManager
    from amf.session.project_store import ProjectStore, StoreError
    from amf.tui.controller import AppContext

    path = store_path or config.store_file
    try:
        store = ProjectStore.load(path)
    except StoreError as exc:
        logger.error(f"[cli] Cannot load store: {exc}")
        _fail(str(exc))
    except OSError as exc:
        logger.error(f"[cli] Cannot read store: {exc}")
        _fail(f"Cannot read {path}: {exc}")

    return AppContext(
        store=store,
        store_path=path,
        tmux=TmuxManager(
            prefix=config.tmux.session_prefix,
            agent_command=config.agent.command,
            timeout_s=config.tmux.command_timeout_s,
        ),
        worktrees=WorktreeManager(),
        config=config,
        cwd=Path.cwd(),
    )


def _preflight(config: Config, ctx) -> None:
    from amf.runtime.agent import AgentNotFoundError, check_available
    from amf.runtime.tmux import TmuxNotFoundError

    try:
        ctx.tmux.check_available()
    except TmuxNotFoundError as exc:
        _fail(str(exc))
    if config.agent.check_on_start:
        try:
            check_available(config.agent.command)
        except AgentNotFoundError as exc:
            _fail(str(exc))


def _reconcile(ctx) -> int:
    from amf.session.project_store import StoreWriteError
    from amf.tui.controller import Controller

    controller = Controller(ctx)
    try:
        return controller.refresh_statuses()
    except StoreWriteError as exc:
        _fail(str(exc))
    return 0


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def ui(
    store: Path = typer.Option(None, "--store", help="Use this project store instead of the configured one."),
) -> None:
    """Run the interactive dashboard."""
    from amf.session.project_store import StoreWriteError
    from amf.runtime.tmux import TmuxError
    from amf.tui.app import DashboardApp
    from amf.tui.controller import Controller
    from amf.usage.monitor import UsageMonitor

    config = _load_config()
    ctx = _build_context(config, store)
    _preflight(config, ctx)

    controller = Controller(ctx)
    try:
        controller.refresh_statuses()
    except StoreWriteError as exc:
        _fail(str(exc))
    controller.message = None

    usage = UsageMonitor(config.usage) if config.usage.enabled and config.ui.show_usage else None
    logger.info(f"[cli] Starting dashboard store={ctx.store_path} projects={len(ctx.store.projects)}")
    DashboardApp(
        controller,
        usage,
        view_tick_ms=config.ui.view_tick_ms,
        idle_tick_ms=config.ui.idle_tick_ms,
    ).run()

    if controller.fatal:
        _fail(controller.fatal)
    if controller.pending_attach:
        logger.info(f"[cli] Attaching to {controller.pending_attach}")
        try:
            ctx.tmux.attach(controller.pending_attach)
        except TmuxError as exc:
            _fail(str(exc))


@app.command()
def status(
    store: Path = typer.Option(None, "--store", help="Use this project store instead of the configured one."),
) -> None:
    """Print projects and features with reconciled status."""
    from amf.tui.theme import STATUS_GLYPHS

    config = _load_config()
    ctx = _build_context(config, store)
    _reconcile(ctx)

    if not ctx.store.projects:
        console.print("[dim]No projects yet. Run [cyan]amf[/cyan] and press N.[/dim]")
        return

    table = Table(title=f"amf · {ctx.store_path}")
    table.add_column("Project", style="bold")
    table.add_column("Feature")
    table.add_column("Branch")
    table.add_column("Status")
    table.add_column("Mode")
    table.add_column("Sessions", justify="right")
    table.add_column("Workdir", style="dim")
    for project in ctx.store.projects:
        if not project.features:
            table.add_row(project.name, "[dim]-[/dim]", "", "", "", "", project.repo)
        for feature in project.features:
            glyph, color = STATUS_GLYPHS[feature.status]
            workdir = feature.workdir + (" (worktree)" if feature.is_worktree else "")
            table.add_row(
                project.name,
                feature.name,
                feature.branch,
                f"[{color}]{glyph} {feature.status.value}[/{color}]",
                feature.mode.value,
                str(len(feature.sessions)),
                workdir,
            )
    console.print(table)


@app.command()
def refresh(
    store: Path = typer.Option(None, "--store", help="Use this project store instead of the configured one."),
) -> None:
    """Reconcile stored feature status with live tmux sessions."""
    config = _load_config()
    ctx = _build_context(config, store)
    changed = _reconcile(ctx)
    console.print(f"[green]OK[/green] {changed} feature(s) changed status")


@app.command()
def doctor() -> None:
    """Check that tmux, git and the agent CLI are usable."""
    from amf.config.loader import get_config_path
    from amf.runtime.agent import AgentNotFoundError, check_available
    from amf.runtime.tmux import TmuxManager, TmuxNotFoundError
    from amf.session.project_store import ProjectStore, StoreError

    config = _load_config()
    problems = 0

    config_path = get_config_path()
    console.print(f"Config: {config_path} {'[green]OK[/green]' if config_path.exists() else '[dim]defaults[/dim]'}")

    try:
        banner = TmuxManager(prefix=config.tmux.session_prefix).check_available()
        console.print(f"tmux: [green]OK[/green] {banner}")
    except TmuxNotFoundError as exc:
        console.print(f"tmux: [red]NO[/red] {exc}")
        problems += 1

    git = shutil.which("git")
    console.print(f"git: {'[green]OK[/green] ' + git if git else '[red]NO[/red] not on PATH'}")
    problems += 0 if git else 1

    try:
        banner = check_available(config.agent.command)
        console.print(f"{config.agent.command}: [green]OK[/green] {banner}")
    except AgentNotFoundError as exc:
        console.print(f"{config.agent.command}: [red]NO[/red] {exc}")
        problems += 1

    store_path = config.store_file
    try:
        store = ProjectStore.load(store_path)
        console.print(f"Store: {store_path} [green]OK[/green] ({len(store.projects)} projects)")
    except (StoreError, OSError) as exc:
        console.print(f"Store: {store_path} [red]NO[/red] {exc}")
        problems += 1

    if problems:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
