"""Command-line interface for the hostpulse agent."""

from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import Settings
from .edge.agent import run_agent
from .edge.config import DEFAULT_CONFIG_PATH, AgentConfig
from .edge.errors import ConfigError
from .utils.net import mask_token

# Overridden at build time
GIT_COMMIT = "unknown"
BUILD_DATE = "unknown"

app = typer.Typer(
    name="hostpulse-agent",
    help="Host telemetry agent: samples system metrics and reports them to a collection server",
    add_completion=False,
)

console = Console()

CONFIG_OPTION = typer.Option(None, "--config", "-c", help=f"Config file (default {DEFAULT_CONFIG_PATH})")
SERVER_OPTION = typer.Option(None, "--server", "-s", help="Collection server URL")
TOKEN_OPTION = typer.Option(None, "--token", "-t", help="API token")
INTERVAL_OPTION = typer.Option(None, "--interval", "-i", help="Sampling interval in seconds")
PROXY_OPTION = typer.Option(None, "--proxy", help="HTTP proxy URL")
DEVICE_OPTION = typer.Option(None, "--device", "-d", help="Only report this disk device or mount point (repeatable)")
INTERFACE_OPTION = typer.Option(None, "--interface", "-n", help="Only report this network interface (repeatable)")
LOG_LEVEL_OPTION = typer.Option(None, "--log-level", "-l", help="Log level: debug, info, warning, error")


def load_config(
    config_path: Optional[Path] = None,
    must_exist: bool = True,
    **overrides,
) -> AgentConfig:
    """Merge config file, environment and flags; later sources win."""
    config = AgentConfig()

    path = config_path or DEFAULT_CONFIG_PATH
    if path.exists():
        try:
            config = AgentConfig.from_yaml(str(path))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"cannot read config file {path}: {e}") from e
    elif config_path is not None and must_exist:
        raise ConfigError(f"config file not found: {config_path}")

    settings = Settings()
    config = config.merge(AgentConfig.from_settings(settings), AgentConfig.settings_fields(settings))
    return config.with_overrides(**overrides)


def _overrides(server, token, interval, proxy, device, interface, log_level) -> dict:
    return {
        "server_url": server,
        "token": token,
        "interval": interval,
        "proxy_url": proxy,
        "devices": device or None,
        "interfaces": interface or None,
        "log_level": log_level.upper() if log_level else None,
    }


def _summary(config: AgentConfig) -> Table:
    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Server", config.server_url or "-")
    table.add_row("Token", mask_token(config.token) or "-")
    table.add_row("Interval", f"{config.interval}s")
    table.add_row("Proxy", config.proxy_url or "-")
    table.add_row("Devices", ", ".join(config.devices) or "all")
    table.add_row("Interfaces", ", ".join(config.interfaces) or "all")
    table.add_row("Log level", config.log_level)
    return table


@app.command()
def start(
    config_path: Optional[Path] = CONFIG_OPTION,
    server: Optional[str] = SERVER_OPTION,
    token: Optional[str] = TOKEN_OPTION,
    interval: Optional[int] = INTERVAL_OPTION,
    proxy: Optional[str] = PROXY_OPTION,
    device: Optional[list[str]] = DEVICE_OPTION,
    interface: Optional[list[str]] = INTERFACE_OPTION,
    log_level: Optional[str] = LOG_LEVEL_OPTION,
):
    """Start sampling and reporting."""
    try:
        config = load_config(
            config_path,
            **_overrides(server, token, interval, proxy, device, interface, log_level),
        ).validate()
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(Panel(_summary(config), title=f"hostpulse agent {__version__}"))
    console.print("Press Ctrl+C to stop")
    run_agent(config)


@app.command("config")
def save_config(
    config_path: Optional[Path] = CONFIG_OPTION,
    server: Optional[str] = SERVER_OPTION,
    token: Optional[str] = TOKEN_OPTION,
    interval: Optional[int] = INTERVAL_OPTION,
    proxy: Optional[str] = PROXY_OPTION,
    device: Optional[list[str]] = DEVICE_OPTION,
    interface: Optional[list[str]] = INTERFACE_OPTION,
    log_level: Optional[str] = LOG_LEVEL_OPTION,
):
    """Save the merged configuration to the config file."""
    path = config_path or DEFAULT_CONFIG_PATH
    try:
        config = load_config(
            path,
            must_exist=False,
            **_overrides(server, token, interval, proxy, device, interface, log_level),
        )
        config.to_yaml(str(path))
    except (ConfigError, OSError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Configuration saved to: {path}[/green]")
    console.print(_summary(config))


@app.command()
def version():
    """Show version information."""
    console.print(f"hostpulse agent {__version__}")
    console.print(f"Git commit: {GIT_COMMIT}")
    console.print(f"Build date: {BUILD_DATE}")


if __name__ == "__main__":
    app()
