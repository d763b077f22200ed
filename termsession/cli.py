"""
termsession/cli.py

Command-line interface for opening and testing terminal sessions.

Usage:
    termsession test --host 10.0.0.5 --user admin --ask-pass
    termsession test web01.yaml
    termsession open                  # local shell
    termsession open web01.yaml       # remote shell from profile
    termsession profiles sessions.yaml
    termsession config
"""

import sys
import os
import json
import shutil
import getpass
import logging
import threading
from dataclasses import replace
from typing import Optional

import click

from .config import get_settings, get_settings_manager, save_settings
from .errors import TermSessionError
from .session import (
    EventKind, ProxyOptions, SessionOptions, SessionState, build_session, load_profiles, test_connection,
)


def format_table(items: list, columns: list[tuple[str, str, int]]) -> str:
    """
    Format items as a simple table.

    Args:
        items: List of (name, object) pairs
        columns: List of (attr_name, header, width) tuples; "name" is the pair key
    """
    if not items:
        return "No results."

    header = ""
    separator = ""
    for attr, name, width in columns:
        header += f"{name:<{width}} "
        separator += "-" * width + " "

    lines = [header.rstrip(), separator.rstrip()]

    for key, item in items:
        row = ""
        for attr, name, width in columns:
            val = key if attr == "name" else getattr(item, attr, "")
            if val is None:
                val = ""
            val_str = str(val)[:width - 1]
            row += f"{val_str:<{width}} "
        lines.append(row.rstrip())

    return "\n".join(lines)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stderr,
    )


def _build_options(
    profile: Optional[str],
    host: Optional[str],
    port: Optional[int],
    user: Optional[str],
    password: Optional[str],
    key_file: Optional[str],
    proxy: Optional[str],
    proxy_type: str,
    x11: bool,
) -> SessionOptions:
    """Profile file first, then command-line flags on top."""
    options = SessionOptions.load(profile) if profile else SessionOptions(type="local")

    overrides = {}
    if host:
        overrides.update(type="remote", host=host)
    if port:
        overrides["port"] = port
    if user:
        overrides["username"] = user
    if password:
        overrides["password"] = password
    if key_file:
        with open(key_file) as f:
            overrides["private_key"] = f.read()
    if proxy:
        proxy_ip, _, proxy_port = proxy.rpartition(":")
        overrides["proxy"] = ProxyOptions(proxy_ip=proxy_ip, proxy_port=int(proxy_port), proxy_type=proxy_type)
    if x11:
        overrides["x11"] = True
    return replace(options, **overrides)


def connection_options(func):
    """Options shared by commands that take connection details."""
    decorators = [
        click.argument("profile", required=False, type=click.Path(exists=True, dir_okay=False)),
        click.option("-H", "--host", default=None, help="Remote host (implies a remote session)"),
        click.option("-P", "--port", type=int, default=None, help="SSH port"),
        click.option("-u", "--user", default=None, help="SSH username"),
        click.option("--password", default=None, help="SSH password (use --ask-pass for interactive)"),
        click.option("--ask-pass", is_flag=True, help="Prompt for SSH password"),
        click.option("-i", "--key-file", default=None, type=click.Path(exists=True, dir_okay=False),
                     help="Private key file"),
        click.option("--proxy", default=None, help="Proxy as host:port"),
        click.option("--proxy-type", default="5", type=click.Choice(["4", "5", "http"]),
                     help="Proxy protocol"),
        click.option("-X", "--x11", is_flag=True, help="Enable X11 forwarding"),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


@click.group()
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, output_json, verbose):
    """termsession command-line interface for local and SSH terminal sessions."""
    ctx.ensure_object(dict)
    ctx.obj["json"] = output_json
    _setup_logging(verbose)


@cli.command("test")
@connection_options
@click.pass_context
def test_cmd(ctx, profile, host, port, user, password, ask_pass, key_file, proxy, proxy_type, x11):
    """Check that a remote host accepts the credentials."""
    if ask_pass:
        password = getpass.getpass("SSH password: ")
    options = _build_options(profile, host, port, user, password, key_file, proxy, proxy_type, x11)

    if options.type != "remote":
        click.echo("Nothing to test: give a remote profile or --host.", err=True)
        sys.exit(2)

    error = None
    try:
        test_connection(options)
    except TermSessionError as e:
        error = e

    if ctx.obj["json"]:
        click.echo(json.dumps({
            "host": options.host,
            "port": options.port,
            "ok": error is None,
            "error": str(error) if error else None,
            "error_type": type(error).__name__ if error else None,
        }))
    elif error is None:
        click.echo(f"OK: {options.username}@{options.host}:{options.port}")
    else:
        click.echo(f"FAILED: {type(error).__name__}: {error}", err=True)

    sys.exit(0 if error is None else 1)


@cli.command("open")
@connection_options
def open_cmd(profile, host, port, user, password, ask_pass, key_file, proxy, proxy_type, x11):
    """Open a session and attach this terminal to it."""
    if ask_pass:
        password = getpass.getpass("SSH password: ")
    options = _build_options(profile, host, port, user, password, key_file, proxy, proxy_type, x11)

    size = shutil.get_terminal_size()
    options = replace(options, cols=options.cols or size.columns, rows=options.rows or size.lines)

    try:
        session = build_session(options)
    except TermSessionError as e:
        click.echo(str(e), err=True)
        sys.exit(2)

    finished = threading.Event()
    out = sys.stdout.buffer

    def on_data(event):
        out.write(event.data)
        out.flush()

    def on_state(event):
        if event.new_state is SessionState.CLOSED:
            finished.set()

    session.subscribe(EventKind.DATA, on_data)
    session.subscribe(EventKind.STATE, on_state)
    session.subscribe(
        EventKind.FORWARD_FAILED,
        lambda event: click.echo(f"\r\nX11 forward failed: {event.reason}\r", err=True),
    )

    try:
        session.init()
    except TermSessionError as e:
        click.echo(f"{type(e).__name__}: {e}", err=True)
        sys.exit(1)

    try:
        _relay_stdin(session, finished)
    finally:
        session.kill()


def _relay_stdin(session, finished: threading.Event) -> None:
    """Copy raw keystrokes to the session until it closes."""
    fd = sys.stdin.fileno()
    saved = None
    if sys.stdin.isatty() and os.name == "posix":
        import termios
        import tty
        saved = termios.tcgetattr(fd)
        tty.setraw(fd)

    def pump():
        while not finished.is_set():
            data = os.read(fd, 1024)
            if not data:
                break
            session.write(data)

    threading.Thread(target=pump, daemon=True).start()
    try:
        finished.wait()
    finally:
        if saved is not None:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)


@cli.command("profiles")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def list_profiles(ctx, path):
    """List session profiles in a YAML file."""
    try:
        profiles = load_profiles(path)
    except ValueError as e:
        click.echo(str(e), err=True)
        sys.exit(1)

    if ctx.obj["json"]:
        click.echo(json.dumps({
            name: {"type": p.type, "host": p.host, "port": p.port, "username": p.username}
            for name, p in profiles.items()
        }, indent=2))
    else:
        columns = [
            ("name", "NAME", 20),
            ("type", "TYPE", 8),
            ("host", "HOST", 25),
            ("port", "PORT", 6),
            ("username", "USER", 15),
        ]
        click.echo(format_table(list(profiles.items()), columns))
        click.echo(f"\n{len(profiles)} profile(s)")


@cli.command("config")
@click.option("--reset", is_flag=True, help="Restore default settings")
@click.option("--set", "assignments", multiple=True, metavar="KEY=VALUE", help="Change a setting")
def show_config(reset, assignments):
    """Show or change settings."""
    manager = get_settings_manager()
    if reset:
        manager.reset()

    changes = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep:
            raise click.BadParameter(f"expected KEY=VALUE, got {assignment!r}", param_hint="--set")
        changes[key.strip()] = value.strip()

    try:
        manager.update(**changes)
    except ValueError as e:
        click.echo(str(e), err=True)
        sys.exit(2)

    if reset or changes:
        save_settings()
    click.echo(f"# {manager.config_path}")
    click.echo(json.dumps(manager.settings.to_dict(), indent=2))


def main():
    """Entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
