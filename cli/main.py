#!/usr/bin/env python3
"""
ENCG Portal CLI - Main Entry Point

Usage:
    encg login                          # Login (prompts for credentials)
    encg modules cours year3            # List modules of a year
    encg resources cours year3 Finance  # List resources of a module
    encg download cours year3 Finance <key>
    encg --help                         # Show help
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from cli.bot_check import BotCheckGate, BotCheckRequired
from cli.client import PortalAPIError, PortalClient
from cli.config import CLIConfig
from cli.session import FileSessionStorage, LoginFailedError, SessionRoleManager


KINDS = ["cours", "td"]
YEARS = ["year3", "year4", "year5"]


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog="encg",
        description="ENCG Portal - course, TD and seminar resources from the terminal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  encg login -u alice                          Login (password is prompted)
  encg status                                  Check login status
  encg modules td year4                        List TD modules for 4th year
  encg resources cours year3 "Module Gestion"  List a module's files and links
  encg download cours year3 Finance -KEY       Save a file locally
  encg seminars                                Upcoming and past seminars
  encg recent cours                            Latest course files
        """
    )
    parser.add_argument("--server-url", help="API base URL (default: ENCG_API_URL or http://localhost:8000/api/v1)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show full error details")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    login_parser = subparsers.add_parser("login", help="Login to the portal")
    login_parser.add_argument("--username", "-u", help="Username")
    login_parser.add_argument("--password", "-p", help="Password (prompted when omitted)")
    login_parser.add_argument("--bot-token", help="Bot-check token from the login page")

    subparsers.add_parser("logout", help="Logout and clear the local session")
    subparsers.add_parser("status", help="Show session status")
    subparsers.add_parser("whoami", help="Show the server's view of the current session")

    modules_parser = subparsers.add_parser("modules", help="List modules")
    modules_parser.add_argument("kind", choices=KINDS)
    modules_parser.add_argument("year", choices=YEARS)

    resources_parser = subparsers.add_parser("resources", help="List resources of a module")
    resources_parser.add_argument("kind", choices=KINDS)
    resources_parser.add_argument("year", choices=YEARS)
    resources_parser.add_argument("module")

    download_parser = subparsers.add_parser("download", help="Download a file resource")
    download_parser.add_argument("kind", choices=KINDS)
    download_parser.add_argument("year", choices=YEARS)
    download_parser.add_argument("module")
    download_parser.add_argument("key")
    download_parser.add_argument("--output", "-o", help="Output directory")

    subparsers.add_parser("seminars", help="List seminars")

    recent_parser = subparsers.add_parser("recent", help="Most recent resources")
    recent_parser.add_argument("kind", choices=KINDS)
    recent_parser.add_argument("--limit", "-n", type=int, default=3)

    return parser


def build_manager(config: CLIConfig) -> SessionRoleManager:
    client = PortalClient(config.api_base_url, timeout=config.timeout)
    manager = SessionRoleManager(
        FileSessionStorage(config.session_file),
        client,
        timeout_seconds=config.session_timeout_seconds,
        activity_throttle_seconds=config.activity_throttle_seconds,
    )
    manager.restore()
    return manager


def obtain_bot_token(config: CLIConfig, explicit: Optional[str]) -> str:
    """The terminal has no widget: a missing token counts as a widget failure"""
    gate = BotCheckGate(production=config.is_production)
    token = explicit or config.bot_token
    if token:
        gate.verify(token)
    else:
        gate.error("no-widget")
    return gate.require()


# ========== Commands ==========

def cmd_login(args, config: CLIConfig, manager: SessionRoleManager, console: Console) -> int:
    username = args.username or Prompt.ask("Username")
    password = args.password or Prompt.ask("Password", password=True)
    try:
        bot_token = obtain_bot_token(config, args.bot_token)
        session = manager.login(username, password, bot_token)
    except BotCheckRequired as e:
        console.print(f"[red]✗ {e}[/red]")
        console.print("[dim]Pass --bot-token or set ENCG_BOT_TOKEN.[/dim]")
        return 1
    except LoginFailedError as e:
        console.print(f"[red]✗ Login failed:[/red] {e}")
        return 1

    console.print(f"[green]✓ Logged in as[/green] [bold]{session.username}[/bold] ({session.role})")
    return 0


def cmd_logout(args, config: CLIConfig, manager: SessionRoleManager, console: Console) -> int:
    if manager.session is None:
        console.print("[yellow]Not logged in[/yellow]")
        return 0
    manager.logout()
    console.print("[green]Logged out successfully[/green]")
    return 0


def cmd_status(args, config: CLIConfig, manager: SessionRoleManager, console: Console) -> int:
    session = manager.session
    if session is None:
        console.print(Panel(
            "[red]Not authenticated[/red]\n\n"
            "Please login using: [cyan]encg login[/cyan]",
            title="Session Status",
            border_style="red"
        ))
        return 1

    from datetime import datetime
    console.print(Panel(
        f"[green]Authenticated[/green]\n\n"
        f"[bold]User:[/bold] {session.username}\n"
        f"[bold]Role:[/bold] {session.role}\n"
        f"[bold]Logged in:[/bold] {datetime.fromtimestamp(session.login_time):%Y-%m-%d %H:%M}\n"
        f"[bold]Last activity:[/bold] {datetime.fromtimestamp(session.last_activity):%Y-%m-%d %H:%M}",
        title="Session Status",
        border_style="green"
    ))
    return 0


def cmd_whoami(args, config: CLIConfig, manager: SessionRoleManager, console: Console) -> int:
    info = manager.client.me()
    console.print(f"[bold]{info['username']}[/bold] ({info['role']}) - session valid until {info.get('expires_at', '?')}")
    return 0


def cmd_modules(args, config: CLIConfig, manager: SessionRoleManager, console: Console) -> int:
    modules = manager.client.list_modules(args.kind, args.year)
    if not modules:
        console.print("[yellow]No modules yet[/yellow]")
        return 0

    table = Table(title=f"{args.kind.upper()} - {args.year}")
    table.add_column("Module", style="cyan")
    table.add_column("Files", justify="right")
    table.add_column("Last update", style="dim")
    for module in modules:
        table.add_row(module["name"], str(module["file_count"]), module.get("last_resource_timestamp") or "-")
    console.print(table)
    return 0


def cmd_resources(args, config: CLIConfig, manager: SessionRoleManager, console: Console) -> int:
    resources = manager.client.list_resources(args.kind, args.year, args.module)
    if not resources:
        console.print("[yellow]This module is empty[/yellow]")
        return 0

    table = Table(title=args.module)
    table.add_column("Key", style="dim")
    table.add_column("Type")
    table.add_column("Description", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Added", style="dim")
    for res in resources:
        kind = f"{res['type']} ({res['file_type']})" if res.get("file_type") else res["type"]
        table.add_row(res["id"], kind, res.get("description", ""), res.get("size") or "", res.get("created_at", ""))
    console.print(table)
    return 0


def cmd_download(args, config: CLIConfig, manager: SessionRoleManager, console: Console) -> int:
    resolved = manager.client.resolve(args.kind, args.year, args.module, args.key)
    if not resolved["requires_auth"]:
        console.print(f"External link: [link={resolved['url']}]{resolved['url']}[/link]")
        return 0

    content, filename = manager.client.download(args.kind, args.year, args.module, args.key)
    target_dir = Path(args.output or config.download_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / filename
    target.write_bytes(content)
    console.print(f"[green]✓ Saved[/green] {target} ({len(content)} bytes)")
    return 0


def cmd_seminars(args, config: CLIConfig, manager: SessionRoleManager, console: Console) -> int:
    seminars = manager.client.seminars()
    if not seminars:
        console.print("[yellow]No seminars scheduled[/yellow]")
        return 0

    colors = {"upcoming": "green", "ongoing": "yellow", "past": "dim"}
    table = Table(title="Seminars")
    table.add_column("Date")
    table.add_column("Time")
    table.add_column("Type", style="cyan")
    table.add_column("Location")
    table.add_column("Spots", justify="right")
    table.add_column("Status")
    for sem in seminars:
        status = sem["status"]
        table.add_row(
            sem["date"], sem["time"], sem["type"], sem["location"], str(sem.get("spots", 0)),
            f"[{colors.get(status, 'white')}]{status}[/]",
        )
    console.print(table)
    return 0


def cmd_recent(args, config: CLIConfig, manager: SessionRoleManager, console: Console) -> int:
    items = manager.client.recent(args.kind, args.limit)
    if not items:
        console.print("[yellow]Nothing published yet[/yellow]")
        return 0
    for item in items:
        where = f"{item.get('year') or ''} / {item.get('module') or ''}".strip(" /")
        console.print(f"• [bold]{item['name']}[/bold] [dim]{where} {item.get('uploadedAt') or ''}[/dim]")
    return 0


COMMANDS = {
    "login": cmd_login,
    "logout": cmd_logout,
    "status": cmd_status,
    "whoami": cmd_whoami,
    "modules": cmd_modules,
    "resources": cmd_resources,
    "download": cmd_download,
    "seminars": cmd_seminars,
    "recent": cmd_recent,
}

# Commands usable without a session
PUBLIC_COMMANDS = {"login", "logout", "status", "seminars", "recent"}


def main(argv=None):
    """Main entry point"""
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    console = Console()
    config = CLIConfig.load_default()
    if args.server_url:
        config.api_base_url = args.server_url

    manager = build_manager(config)

    if args.command not in PUBLIC_COMMANDS and manager.session is None:
        console.print("\n[red]✗ Authentication required[/red]")
        console.print("\nPlease login first:")
        console.print("  [cyan]encg login[/cyan]")
        sys.exit(1)

    try:
        manager.touch()
        code = COMMANDS[args.command](args, config, manager, console)
    except KeyboardInterrupt:
        console.print("\n\nGoodbye!")
        code = 0
    except PortalAPIError as e:
        if e.is_auth_error and manager.session is not None:
            manager.logout()
            console.print("[yellow]Session expired or signed out. Please login again.[/yellow]")
        else:
            console.print(f"\n[red]❌ Error:[/red] {e.message}")
            if args.verbose:
                console.print(f"[dim]{e.code} (HTTP {e.status_code})[/dim]")
        code = 1
    finally:
        manager.client.close()

    sys.exit(code)


if __name__ == "__main__":
    main()
