#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from aioconsole import ainput
from rich.console import Console
from rich.table import Table

from taclient.client import TAClient
from taclient.config import ConfigError, ConnectionConfig, default_server, load_config_file
from taproto.log import configure_root_logging, get_logger, set_level
from taproto.models import ClientType, Match
from taproto.packets import Packet

app = typer.Typer(help="Tournament Assistant websocket client")
console = Console()
logger = get_logger(__name__)

HELP_TEXT = (
    "/users, /matches, /create <guid...>, /load <match> <name> <hash> <difficulty>, "
    "/play <match>, /menu <match>, /close <match>, /quit"
)


def _resolve_config(config_path: Optional[Path], role: Optional[str], verbose: bool) -> ConnectionConfig:
    overrides = {}
    if role is not None:
        overrides["connection_mode"] = role
    if verbose:
        overrides["logging"] = True
    try:
        if config_path is not None:
            return load_config_file(config_path, **overrides)
        return ConnectionConfig.from_overrides(overrides)
    except ConfigError as e:
        console.print(f"[red]Invalid configuration[/]: {e}")
        raise typer.Exit(code=2)


def _users_table(client: TAClient) -> Table:
    table = Table(title="Connected Users")
    table.add_column("Guid")
    table.add_column("Name")
    table.add_column("Role")
    for user in client.store.users:
        marker = " (you)" if user.guid == client.store.self_guid else ""
        table.add_row(user.guid, user.name + marker, user.client_type.value)
    return table


def _matches_table(client: TAClient) -> Table:
    table = Table(title="Matches")
    table.add_column("Guid")
    table.add_column("Leader")
    table.add_column("Players")
    table.add_column("Level")
    table.add_column("Start")
    for match in client.store.matches:
        level = match.selected_level.name if match.selected_level else "-"
        table.add_row(
            match.guid,
            match.leader[:8],
            str(len(client.get_players(match))),
            level,
            match.start_time or "-",
        )
    return table


def _find_match(client: TAClient, prefix: str) -> Optional[Match]:
    found = [m for m in client.store.matches if m.guid.startswith(prefix)]
    if len(found) != 1:
        console.print(f"[red]No unique match for[/] {prefix}")
        return None
    return found[0]


def _print_event(packet: Packet) -> None:
    console.print(f"[dim]recv {packet.kind}[/]")


async def _handle_line(client: TAClient, line: str) -> bool:
    """Run one console command; returns False when the session should end."""
    parts = line.split()
    command, args = parts[0], parts[1:]

    if command in {"/quit", "/exit"}:
        return False
    if command == "/help":
        console.print(HELP_TEXT)
    elif command == "/users":
        console.print(_users_table(client))
    elif command == "/matches":
        console.print(_matches_table(client))
    elif command == "/create":
        players = [u for u in client.store.users if any(u.guid.startswith(a) for a in args)]
        match_id = await client.create_match(players)
        console.print(f"[bold green]Created match[/] {match_id} with {len(players)} player(s)")
    elif command == "/load":
        if len(args) != 4 or not args[3].isdigit():
            console.print("Usage: /load <match> <name> <hash> <difficulty>")
            return True
        match = _find_match(client, args[0])
        if match is not None:
            await client.load_song(args[1], args[2], int(args[3]), match)
            console.print(f"Loading {args[1]} for {len(client.get_players(match))} player(s)")
    elif command == "/play":
        match = _find_match(client, args[0]) if args else None
        if match is not None:
            await client.play_song(match)
            console.print(f"Starting at {match.start_time}")
    elif command == "/menu":
        match = _find_match(client, args[0]) if args else None
        if match is not None:
            await client.return_to_menu([p.guid for p in client.get_players(match)])
    elif command == "/close":
        match = _find_match(client, args[0]) if args else None
        if match is not None:
            await client.close_match(match)
    else:
        console.print("Unknown command. /help")
    return True


@app.command()
def connect(
    server: str = typer.Option(default_server(), help="WebSocket URL of the TA server"),
    name: str = typer.Option("ta-client", help="Display name announced to the server"),
    password: Optional[str] = typer.Option(None, help="Server password, if any"),
    role: Optional[str] = typer.Option(None, help="Client type: " + ", ".join(t.value for t in ClientType)),
    config: Optional[Path] = typer.Option(None, help="YAML file with connection options"),
    timeout: float = typer.Option(10.0, help="Seconds to wait for the handshake"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log protocol activity"),
):
    """Connect, complete the handshake and start an interactive session."""
    resolved = _resolve_config(config, role, verbose)
    if verbose:
        configure_root_logging("INFO")
        set_level("DEBUG")

    async def main_loop() -> None:
        client = TAClient(server, name, password=password, options=resolved)
        await client.start()
        client.on("event", _print_event)
        console.print(f"[bold green]TA client starting[/] as {client.self_user.guid[:8]} on {server}")

        try:
            if not await client.wait_until_connected(timeout):
                console.print(f"[red]No handshake within {timeout:.0f}s[/]")
                return
            settings = client.store.server_settings
            console.print(f"Connected to {settings.server_name if settings else server}. /help for commands")

            while True:
                line = (await ainput(": ")).strip()
                if not line:
                    continue
                if not await _handle_line(client, line):
                    break
        finally:
            await client.close()

    try:
        asyncio.run(main_loop())
    except (KeyboardInterrupt, EOFError):
        console.print("Bye")


@app.command("config")
def show_config(
    config: Optional[Path] = typer.Option(None, help="YAML file with connection options"),
    role: Optional[str] = typer.Option(None, help="Client type override"),
):
    """Print the resolved connection configuration."""
    resolved = _resolve_config(config, role, verbose=False)
    table = Table(title="Connection Config")
    table.add_column("Option")
    table.add_column("Value")
    for key, value in resolved.as_dict().items():
        shown = value.value if isinstance(value, ClientType) else value
        table.add_row(key, str(shown))
    console.print(table)


def main(argv: Optional[List[str]] = None) -> None:
    app(args=argv)


if __name__ == "__main__":
    main()
