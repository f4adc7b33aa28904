#!/usr/bin/env python3
"""
marksync command-line interface.

Usage:
    marksync config show
    marksync config set endpoint <url>
    marksync config set secret <value>
    marksync config init
    marksync select <id> [<id> ...]
    marksync deselect <id> [<id> ...]
    marksync status
    marksync send
    marksync watch
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from marksync import __version__
from marksync.config import MarksyncConfig, init_config
from marksync.engine import SyncEngine
from marksync.errors import MarksyncError, StoreAccessFailure
from marksync.selection import SelectionSet
from marksync.store import JsonFileConfigStore
from marksync.transmit import SendObserver, Transmitter
from marksync.tree import (
    BookmarkTree, find_chromium_bookmarks_file, load_chromium_bookmarks,
    read_chromium_bookmarks,
)

logger = logging.getLogger(__name__)


console = Console()


def open_store(config: MarksyncConfig) -> JsonFileConfigStore:
    return JsonFileConfigStore(config.get_store_path())


def bookmarks_path(config: MarksyncConfig) -> Path:
    """Resolve the bookmark file to read."""
    if config.bookmarks_file:
        return Path(config.bookmarks_file)
    path = find_chromium_bookmarks_file(config.browser_profile)
    if path is None:
        raise MarksyncError("No browser bookmarks file found; set bookmarks_file in the config")
    return path


def make_transmitter(config: MarksyncConfig) -> Transmitter:
    kwargs = {'timeout': config.get_timeout()}
    if config.user_agent:
        kwargs['user_agent'] = config.user_agent
    return Transmitter(**kwargs)


def is_valid_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme and parsed.netloc)


def mask_secret(secret: str) -> str:
    if not secret:
        return "(none)"
    return "*" * min(len(secret), 8)


class ConsoleSendObserver(SendObserver):
    """Shows a spinner for the duration of an interactive send."""

    def __init__(self, console: Console):
        self.console = console
        self._status = None

    def on_begin(self):
        self._status = self.console.status("Sending bookmarks...")
        self._status.start()

    def _settle(self):
        if self._status is not None:
            self._status.stop()
            self._status = None

    def on_success(self, data: Any):
        self._settle()
        self.console.print("[green]✓ Bookmarks sent[/green]")
        if data is not None:
            self.console.print(f"[dim]{data}[/dim]")

    def on_failure(self, message: str):
        self._settle()
        self.console.print(f"[red]✗ Send failed: {message}[/red]")


# =================
# CONFIG
# =================

async def _config_command(args, config: MarksyncConfig):
    if args.action == "init":
        config_path = Path.home() / ".config" / "marksync" / "config.toml"
        config.save(config_path)
        console.print(f"[green]Created config at {config_path}[/green]")
        return

    store = open_store(config)
    record = await store.read()

    if args.action == "show":
        table = Table(title="marksync", show_header=False)
        table.add_column("Setting", style="cyan bold")
        table.add_column("Value", style="white")
        table.add_row("Endpoint URL", record.endpoint_url or "(not set)")
        table.add_row("Shared secret", mask_secret(record.shared_secret))
        table.add_row("Selected bookmarks", str(len(record.selected_ids)))
        table.add_row("State file", str(store.path))
        table.add_row("Bookmarks file", config.bookmarks_file or "(auto-detect)")
        table.add_row("Window", f"{config.window_seconds:g}s")
        console.print(table)
        return

    if args.key is None or args.value is None:
        raise MarksyncError("Usage: marksync config set <endpoint|secret> <value>")

    value = args.value.strip()
    if args.key == "endpoint":
        # Empty clears the endpoint
        if value and not is_valid_url(value):
            raise MarksyncError(f"Invalid endpoint URL: {value}")
        record.endpoint_url = value
    else:
        record.shared_secret = value
    await store.write(record)
    console.print(f"[green]Updated {args.key}[/green]")


def cmd_config(args):
    asyncio.run(_config_command(args, args.config_obj))


# =================
# SELECTION
# =================

async def _selection_command(args, config: MarksyncConfig, selecting: bool):
    store = open_store(config)
    tree = load_chromium_bookmarks(bookmarks_path(config))
    selection = SelectionSet(store)
    await selection.load()

    for node_id in args.ids:
        node = tree.find(node_id)
        if node is None and selecting:
            console.print(f"[yellow]Warning: Bookmark not found: {node_id}[/yellow]")
            continue

        if node is not None and node.is_folder:
            if selecting:
                await selection.select_subtree(node)
            else:
                await selection.deselect_subtree(node)
            label = f"folder {node.title or node_id} ({len(node.descendant_ids())} items inside)"
        else:
            if selecting:
                await selection.add(node_id)
            else:
                await selection.remove(node_id)
            label = node.title if node is not None else node_id

        verb = "Selected" if selecting else "Deselected"
        console.print(f"[green]{verb} {label}[/green]")

    console.print(f"{len(selection)} bookmark(s) selected")


def cmd_select(args):
    asyncio.run(_selection_command(args, args.config_obj, selecting=True))


def cmd_deselect(args):
    asyncio.run(_selection_command(args, args.config_obj, selecting=False))


# =================
# STATUS
# =================

async def _status_command(args, config: MarksyncConfig):
    store = open_store(config)
    record = await store.read()
    tree = load_chromium_bookmarks(bookmarks_path(config))

    table = Table(title=f"Selected bookmarks → {record.endpoint_url or '(no endpoint)'}")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Type", style="magenta")
    table.add_column("URL", style="blue")

    missing = 0
    for node_id in record.selected_ids:
        node = tree.find(node_id)
        if node is None:
            missing += 1
            table.add_row(node_id, "[red](not found)[/red]", "", "")
            continue
        table.add_row(
            node_id,
            (node.title or "")[:50],
            "folder" if node.is_folder else "link",
            (node.url or "")[:50],
        )

    console.print(table)
    if missing:
        console.print(f"[yellow]{missing} selected bookmark(s) could not be resolved[/yellow]")


def cmd_status(args):
    asyncio.run(_status_command(args, args.config_obj))


# =================
# SEND
# =================

async def _send_command(args, config: MarksyncConfig) -> bool:
    store = open_store(config)
    tree = load_chromium_bookmarks(bookmarks_path(config))
    engine = SyncEngine(store, tree, make_transmitter(config), window=config.window_seconds)
    result = await engine.send_now(ConsoleSendObserver(console))
    return result.success


def cmd_send(args):
    if not asyncio.run(_send_command(args, args.config_obj)):
        sys.exit(1)


# =================
# WATCH
# =================

async def _watch_command(args, config: MarksyncConfig):
    store = open_store(config)
    path = bookmarks_path(config)
    tree = BookmarkTree(read_chromium_bookmarks(path))
    engine = SyncEngine(store, tree, make_transmitter(config), window=config.window_seconds)
    await engine.start()

    console.print(Panel(
        f"[bold]Watch Mode[/bold]\n\n"
        f"Bookmarks: {path}\n"
        f"Selected: {len(engine.selection)}\n"
        f"Window: {config.window_seconds:g}s\n\n"
        "[dim]Press Ctrl+C to stop[/dim]",
        title="marksync",
        border_style="green"
    ))

    runner = asyncio.ensure_future(engine.coalescer.run())
    last_mtime = path.stat().st_mtime
    try:
        while True:
            await asyncio.sleep(config.poll_interval)

            try:
                await store.refresh()
            except StoreAccessFailure as e:
                logger.error(f"Failed to refresh state: {e}")

            try:
                mtime = path.stat().st_mtime
                if mtime == last_mtime:
                    continue
                root = read_chromium_bookmarks(path)
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to read bookmarks file: {e}")
                continue

            last_mtime = mtime
            events = tree.replace_root(root)
            if events:
                logger.info(f"Detected {len(events)} bookmark changes")
    finally:
        engine.stop()
        await runner
        await engine.flush()


def cmd_watch(args):
    try:
        asyncio.run(_watch_command(args, args.config_obj))
    except KeyboardInterrupt:
        console.print("\n[yellow]Watch mode stopped[/yellow]")


def setup_logging(level: str):
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO),
                        format='%(levelname)s: %(message)s')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="marksync",
        description="Keep a remote endpoint informed of selected bookmarks",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Config file to load")
    parser.add_argument("--state", help="State file holding endpoint, secret and selection")
    parser.add_argument("--bookmarks", help="Chromium Bookmarks file to read")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    config_parser = subparsers.add_parser("config", help="Show or change the sync settings")
    config_parser.add_argument("action", choices=["show", "set", "init"], help="Config action")
    config_parser.add_argument("key", nargs="?", choices=["endpoint", "secret"], help="Setting to change")
    config_parser.add_argument("value", nargs="?", help="New value (empty string clears the secret)")
    config_parser.set_defaults(func=cmd_config)

    select_parser = subparsers.add_parser("select", help="Select bookmarks for export")
    select_parser.add_argument("ids", nargs="+", help="Bookmark IDs (folders select their contents)")
    select_parser.set_defaults(func=cmd_select)

    deselect_parser = subparsers.add_parser("deselect", help="Remove bookmarks from the export")
    deselect_parser.add_argument("ids", nargs="+", help="Bookmark IDs (folders deselect their contents)")
    deselect_parser.set_defaults(func=cmd_deselect)

    status_parser = subparsers.add_parser("status", help="Show the current selection")
    status_parser.set_defaults(func=cmd_status)

    send_parser = subparsers.add_parser("send", help="Send the selected bookmarks now")
    send_parser.set_defaults(func=cmd_send)

    watch_parser = subparsers.add_parser("watch", help="Watch for changes and sync automatically")
    watch_parser.add_argument("--window", type=float, help="Coalescing window in seconds")
    watch_parser.add_argument("--interval", "-i", type=float, help="Bookmark file polling interval")
    watch_parser.set_defaults(func=cmd_watch)

    return parser


def main(argv: Optional[list] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    config = init_config(
        config_file=Path(args.config) if args.config else None,
        store_path=args.state,
        bookmarks_file=args.bookmarks,
        window_seconds=getattr(args, "window", None),
        poll_interval=getattr(args, "interval", None),
    )
    setup_logging("DEBUG" if args.verbose else config.log_level)
    if not config.color_output:
        console.no_color = True
    args.config_obj = config

    try:
        args.func(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
