"""
CLI commands for superbot.

Built on Typer.
"""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

import typer

from superbot.agent.loop import AgentLoop
from superbot.bus import MessageBus
from superbot.channels import ChannelManager
from superbot.config import Config, load_config
from superbot.cron.service import CronService
from superbot.health import HealthServer
from superbot.heartbeat.service import HeartbeatService
from superbot.memory.sessions import SessionManager
from superbot.providers import create_provider

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="superbot",
    help="superbot: a personal AI assistant gateway",
)

cron_app = typer.Typer(help="Manage scheduled jobs")
app.add_typer(cron_app, name="cron")

EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit"}

BOOTSTRAP_TEMPLATES = {
    "AGENTS.md": "# Agent Instructions\n\nYou are a helpful AI assistant.\n",
    "SOUL.md": "# Personality\n\nBe helpful, accurate, and concise.\n",
    "USER.md": "# User Context\n\nAdd information about yourself here.\n",
}
WORKSPACE_DIRS = ("memory", "skills", "sessions")


def _cron_store(config: Config) -> Path:
    return config.workspace / "cron" / "jobs.json"


def _make_agent(
    config: Config,
    bus: MessageBus | None = None,
    cron: CronService | None = None,
) -> AgentLoop:
    """Wire an AgentLoop from config."""
    config.workspace.mkdir(parents=True, exist_ok=True)
    return AgentLoop(
        bus=bus or MessageBus(),
        provider=create_provider(config),
        workspace=config.workspace,
        model=config.provider.model,
        max_iterations=config.agent.max_iterations,
        memory_window=config.agent.memory_window,
        brave_api_key=config.web.brave_api_key or None,
        exec_config=config.exec,
        cron_service=cron,
        subagent_max_iterations=config.agent.subagent_max_iterations,
    )


@app.command()
def onboard(
    workspace: Optional[Path] = typer.Option(None, "--workspace", "-w", help="Workspace path"),
):
    """Create the workspace with starter bootstrap files."""
    config = load_config()
    root = workspace.expanduser().resolve() if workspace else config.workspace
    root.mkdir(parents=True, exist_ok=True)
    typer.echo(f"Workspace: {root}")

    for filename, content in BOOTSTRAP_TEMPLATES.items():
        path = root / filename
        if path.exists():
            typer.echo(f"  Kept {filename}")
            continue
        path.write_text(content, encoding="utf-8")
        typer.echo(f"  Created {filename}")

    for dirname in WORKSPACE_DIRS:
        (root / dirname).mkdir(exist_ok=True)
        typer.echo(f"  Created {dirname}/")

    typer.echo("\nOnboarding complete. Set SUPERBOT_PROVIDER__API_KEY, then run: superbot agent")


@app.command()
def agent(
    message: Optional[str] = typer.Option(None, "-m", "--message", help="Single message to process"),
    session: str = typer.Option("cli:direct", "--session", "-s", help="Session key (channel:chat_id)"),
):
    """
    Talk to the agent from the terminal.

    With -m: process a single message and exit.
    Without -m: interactive REPL (type 'exit' or 'quit' to leave).
    """
    config = load_config()
    agent_loop = _make_agent(config)

    if message:
        response = asyncio.run(agent_loop.process_direct(message, session_key=session))
        typer.echo(f"\n{response}")
        return

    asyncio.run(_repl(agent_loop, session))


async def _repl(agent_loop: AgentLoop, session_key: str) -> None:
    typer.echo("superbot interactive mode (type 'exit' to quit)\n")
    while True:
        try:
            user_input = await asyncio.to_thread(input, "You: ")
        except (EOFError, KeyboardInterrupt):
            typer.echo("\nGoodbye!")
            return

        text = user_input.strip()
        if not text:
            continue
        if text.lower() in EXIT_COMMANDS:
            typer.echo("Goodbye!")
            return

        response = await agent_loop.process_direct(text, session_key=session_key)
        typer.echo(f"\nsuperbot: {response}\n")


@app.command()
def status():
    """Show configuration and status."""
    config = load_config()

    typer.echo("\n=== superbot status ===")
    typer.echo(f"Workspace: {config.workspace}")
    typer.echo(f"Model: {config.provider.model}")
    typer.echo(f"Fallbacks: {', '.join(config.provider.fallback_models) or 'none'}")
    typer.echo(f"API base: {config.provider.api_base}")
    typer.echo(f"API key: {'set' if config.provider.api_key else 'not set'}")
    typer.echo("\nChannels:")

    for channel_name, channel_config in config.channels.model_dump().items():
        state = "✓ enabled" if channel_config.get("enabled", False) else "✗ disabled"
        typer.echo(f"  {channel_name}: {state}")

    typer.echo(f"\nHeartbeat: {'every ' + str(config.heartbeat.interval_s) + 's' if config.heartbeat.enabled else 'disabled'}")
    typer.echo("")


@app.command()
def sessions(
    delete: Optional[str] = typer.Option(None, "--delete", help="Delete the session with this key"),
):
    """List stored conversation sessions, newest first."""
    config = load_config()
    manager = SessionManager(config.workspace)

    if delete:
        if manager.delete(delete):
            typer.echo(f"Deleted session {delete}")
        else:
            typer.echo(f"Session not found: {delete}", err=True)
            raise typer.Exit(code=1)
        return

    stored = manager.list_sessions()
    if not stored:
        typer.echo("No sessions.")
        return

    for s in stored:
        typer.echo(f"  {s['key']}  (updated {s.get('updated_at') or '?'})")


@app.command()
def heartbeat():
    """
    Run a single heartbeat tick.

    Checks HEARTBEAT.md and has the agent process any tasks.
    """
    config = load_config()
    agent_loop = _make_agent(config)
    service = HeartbeatService(agent=agent_loop, interval_s=config.heartbeat.interval_s)

    typer.echo(f"Workspace: {config.workspace}")
    response = asyncio.run(service.trigger_now())
    if response is None:
        typer.echo("Nothing to do (HEARTBEAT.md missing or empty).")
    else:
        typer.echo(f"\n{response}")


@cron_app.command("list")
def cron_list(
    show_all: bool = typer.Option(False, "--all", "-a", help="Include disabled jobs"),
):
    """List scheduled jobs."""
    config = load_config()
    jobs = CronService(store_path=_cron_store(config)).list_jobs(include_disabled=show_all)
    if not jobs:
        typer.echo("No scheduled jobs.")
        return

    typer.echo("Scheduled jobs:\n")
    for job in jobs:
        state = "enabled" if job.enabled else "disabled"
        line = f"  {job.name} [{job.schedule_type} {job.schedule_value}] {state}, next: {job.next_run_at or '-'}"
        if job.last_status:
            line += f", last: {job.last_status}"
            if job.last_error:
                line += f" ({job.last_error})"
        typer.echo(line)


@cron_app.command("remove")
def cron_remove(name: str = typer.Argument(..., help="Job name")):
    """Delete a scheduled job."""
    config = load_config()
    if not asyncio.run(CronService(store_path=_cron_store(config)).remove_job(name)):
        typer.echo(f"Job not found: {name}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Removed job {name}")


def _set_enabled(name: str, enabled: bool) -> None:
    config = load_config()
    service = CronService(store_path=_cron_store(config))
    try:
        found = asyncio.run(service.enable_job(name, enabled))
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    if not found:
        typer.echo(f"Job not found: {name}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"{'Enabled' if enabled else 'Disabled'} job {name}")


@cron_app.command("enable")
def cron_enable(name: str = typer.Argument(..., help="Job name")):
    """Re-enable a job and compute its next run."""
    _set_enabled(name, True)


@cron_app.command("disable")
def cron_disable(name: str = typer.Argument(..., help="Job name")):
    """Pause a job without deleting it."""
    _set_enabled(name, False)


@app.command()
def gateway(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Start the full gateway.

    This runs:
    - Message bus for routing
    - Agent loop processing inbound messages
    - All enabled channels (Telegram, WhatsApp)
    - Outbound dispatcher
    - Cron scheduler and heartbeat
    - Health endpoint
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    config = load_config()

    typer.echo("\n=== superbot gateway ===")
    typer.echo(f"Workspace: {config.workspace}")
    typer.echo(f"Model: {config.provider.model}")

    asyncio.run(_run_gateway(config))


async def _run_gateway(config: Config) -> None:
    from superbot.channels.telegram import TelegramChannel
    from superbot.channels.whatsapp import WhatsAppChannel

    bus = MessageBus().start()
    cron = CronService(bus=bus, interval_s=60, store_path=_cron_store(config))
    agent_loop = _make_agent(config, bus=bus, cron=cron)
    cron.agent = agent_loop

    heartbeat_service = HeartbeatService(
        agent=agent_loop,
        interval_s=config.heartbeat.interval_s,
        enabled=config.heartbeat.enabled,
    )

    channels = ChannelManager(bus)
    for name, cls in (("telegram", TelegramChannel), ("whatsapp", WhatsAppChannel)):
        channel_config = getattr(config.channels, name).model_dump()
        channel_config["workspace"] = str(config.workspace)
        channels.init_channel(name, cls, channel_config)

    health_server = HealthServer(
        bus=bus,
        channels=channels,
        subagents=agent_loop.subagents,
        host=config.gateway.host,
        port=config.gateway.port,
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_signal() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal)

    await channels.start_all()
    await cron.start()
    await heartbeat_service.start()
    agent_task = asyncio.create_task(agent_loop.run())
    health_task = asyncio.create_task(health_server.start())
    typer.echo("Gateway running (Ctrl+C to stop)")

    try:
        await shutdown_event.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

        typer.echo("Stopping services...")
        agent_loop.stop()
        for task in (agent_task, health_task):
            task.cancel()
        await asyncio.gather(agent_task, health_task, return_exceptions=True)

        await agent_loop.subagents.cancel_all()
        await cron.stop()
        await heartbeat_service.stop()
        await health_server.stop()
        await channels.stop_all()
        await bus.stop()
        typer.echo("Goodbye!")


def main() -> None:
    """Entry point for CLI."""
    app()
