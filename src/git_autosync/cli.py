import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import daemon
from .config import Config, add_repo_entry, remove_repo_entry
from .constants import APP_NAME, CONFIG_FILE, GIT_DIR_NAME
from .system import NOTIFICATION_MODES, get_hostname, get_notifier
from .worker import ConfigurationError

logger = logging.getLogger(APP_NAME)
console = Console()


def list_repos(config: Config) -> None:
    """Prints the configured repositories and whether they run on this host."""
    if not config.repos:
        console.print(f"[yellow]No repositories configured in {config.source}.[/yellow]")
        return

    hostname = get_hostname()
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Path")
    table.add_column("Hosts", style="dim")
    table.add_column("Status")

    for repo in config.repos:
        path = repo.resolved_path
        display_path = str(path).replace(str(Path.home()), "~")

        if not repo.matches_host(hostname):
            status_text, status_style = "Other host", "dim"
        elif not path.exists():
            status_text, status_style = "Missing", "red"
        elif not (path / GIT_DIR_NAME).is_dir():
            status_text, status_style = "Not a repository", "bold red"
        else:
            status_text, status_style = "Active", "green"

        table.add_row(
            repo.name,
            display_path,
            ", ".join(repo.hosts) or "any",
            f"[{status_style}]{status_text}[/{status_style}]",
        )

    console.print(table)


def sync_once(path: Path, name: str | None, mode: str) -> int:
    """Runs one forced pass and reports the outcome.

    Returns:
        int: The process exit code.
    """
    try:
        with console.status(f"Synchronizing {path.name}...", spinner="dots"):
            outcome = daemon.run_once(path, name, get_notifier(mode))
    except ConfigurationError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        return 1

    if outcome.aborted:
        console.print(f"[bold yellow]STOPPED:[/bold yellow] {outcome.aborted}")
        return 1

    if outcome.created_commit:
        console.print(f"[green]Committed:[/green] {outcome.commit_message}")
    if outcome.pulled:
        console.print("[green]Rebased onto upstream.[/green]")
    if outcome.pushed:
        console.print("[green]Pushed.[/green]")
    console.print("[bold green]✔ Sync complete.[/bold green]")
    return 0


def add_repo(path: Path, name: str | None, hosts: list[str], config_file: Path) -> int:
    """Adds a repository to the configuration file."""
    root = path.expanduser().absolute()
    if not (root / GIT_DIR_NAME).is_dir():
        console.print(f"[bold red]ERROR:[/bold red] Not a git repository: {root}")
        return 1

    try:
        add_repo_entry(name or root.name, root, hosts, config_file)
    except ValueError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        return 1

    console.print(
        f"[bold green]SUCCESS:[/bold green] Added '{name or root.name}' to {config_file}."
    )
    return 0


def remove_repo(name: str, config_file: Path) -> int:
    """Removes a repository from the configuration file."""
    if not remove_repo_entry(name, config_file):
        console.print(f"[yellow]No repository named '{name}' in {config_file}.[/yellow]")
        return 1
    console.print(f"[bold green]SUCCESS:[/bold green] Removed '{name}'.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Keep git working directories synchronized with their remotes.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_FILE,
        help=f"Configuration file (default: {CONFIG_FILE})",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run the synchronization daemon")
    run_parser.add_argument(
        "--notifications",
        choices=NOTIFICATION_MODES,
        help="Override the configured notification mode",
    )
    run_parser.add_argument(
        "--foreground",
        action="store_true",
        help="Log to stdout only (no log file)",
    )

    once_parser = subparsers.add_parser(
        "once", help="Synchronize one repository immediately"
    )
    once_parser.add_argument(
        "path", nargs="?", type=Path, default=None, help="Repository (default: cwd)"
    )
    once_parser.add_argument("--name", help="Display name (default: directory name)")
    once_parser.add_argument(
        "--notifications",
        choices=NOTIFICATION_MODES,
        default="terminal",
        help="Notification mode (default: terminal)",
    )

    subparsers.add_parser("list", help="List configured repositories")

    add_parser = subparsers.add_parser("add", help="Add a repository to the config")
    add_parser.add_argument("path", type=Path, help="Repository root")
    add_parser.add_argument("--name", help="Display name (default: directory name)")
    add_parser.add_argument(
        "--host",
        dest="hosts",
        action="append",
        default=[],
        help="Only synchronize on this host (repeatable)",
    )

    remove_parser = subparsers.add_parser(
        "remove", help="Remove a repository from the config"
    )
    remove_parser.add_argument("name", help="Repository name")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-autosync CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.INFO

    if args.command == "run":
        config = Config.load(args.config)
        daemon.setup_logging(
            args.foreground, level=level, max_log_size=config.limits.max_log_size
        )
        if args.notifications:
            config.notifications.mode = args.notifications
        daemon.run(config)
        return
    elif args.command == "once":
        daemon.setup_logging(True, level=level)
        sys.exit(sync_once(args.path or Path.cwd(), args.name, args.notifications))
    elif args.command == "list":
        list_repos(Config.load(args.config))
        return
    elif args.command == "add":
        sys.exit(add_repo(args.path, args.name, args.hosts, args.config))
    elif args.command == "remove":
        sys.exit(remove_repo(args.name, args.config))

    parser.print_help()


if __name__ == "__main__":
    main()
