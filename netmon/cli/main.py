#!/usr/bin/env python3
"""Main CLI entry point for netmon using Typer.

``serve`` exposes the monitoring tools over a JSON-lines protocol on
stdin/stdout, ``watch`` prints captured requests as they arrive, and
``version`` reports the installed version.
"""

import asyncio
import json
import logging
import sys
import time
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from typing_extensions import Annotated

from .. import __version__
from ..capture.config import MonitorConfig, MonitorConfigManager
from ..capture.errors import NetmonError
from ..capture.session import MonitorSession
from ..tools.dispatch import ToolDispatcher, error_result

logger = logging.getLogger(__name__)

LIST_TOOLS_REQUEST = "list_tools"


class ExitCode(Enum):
    """Process exit codes."""
    SUCCESS = 0
    RUNTIME_ERROR = 1
    CONFIG_ERROR = 2


# Create the main Typer app
app = typer.Typer(
    name="netmon",
    help="netmon - capture and filter browser network traffic over DevTools",
    add_completion=False,
)


def configure_logging(level: str) -> None:
    """Send log records to stderr; stdout carries tool results."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def load_settings(config_path: Optional[Path], log_level: Optional[str]) -> MonitorConfig:
    """Load configuration and set up logging, exiting on invalid config."""
    try:
        config = MonitorConfigManager(config_path).load_config()
    except NetmonError as e:
        typer.echo(f"❌ Configuration error: {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    configure_logging(log_level or config.log_level)
    return config


async def handle_line(dispatcher: ToolDispatcher, line: str) -> Dict[str, Any]:
    """Execute one JSON-lines request.

    Args:
        dispatcher: Tool dispatcher bound to the running session
        line: ``{"tool": <name>, "arguments": {...}}`` as JSON text

    Returns:
        Structured tool result
    """
    try:
        request = json.loads(line)
    except json.JSONDecodeError as e:
        return error_result("InvalidRequest", f"Request is not valid JSON: {e}")

    if not isinstance(request, dict) or not isinstance(request.get("tool"), str):
        return error_result("InvalidRequest", "Request must be an object with a 'tool' name")

    arguments = request.get("arguments") or {}
    if not isinstance(arguments, dict):
        return error_result("InvalidRequest", "'arguments' must be an object")

    if request["tool"] == LIST_TOOLS_REQUEST:
        return {"ok": True, "result": dispatcher.list_tools()}
    return await dispatcher.call(request["tool"], arguments)


async def serve_stream(dispatcher: ToolDispatcher, stdin=None, stdout=None) -> int:
    """Answer requests line by line until end of input.

    Returns:
        Number of requests handled
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    loop = asyncio.get_running_loop()
    handled = 0

    try:
        while True:
            line = await loop.run_in_executor(None, stdin.readline)
            if not line:
                break
            if not line.strip():
                continue

            result = await handle_line(dispatcher, line)
            stdout.write(json.dumps(result) + "\n")
            stdout.flush()
            handled += 1
    finally:
        await dispatcher.session.close()

    logger.info(f"Input closed after {handled} requests")
    return handled


def _print_record(record: Dict[str, Any]) -> None:
    response = record.get("response") or {}
    status = response.get("status", "---")
    mime_type = response.get("mime_type") or "-"
    typer.echo(f"{record['method']:<7} {status} {mime_type:<32} {record['url']}")


async def watch_session(
    session: MonitorSession,
    duration: float,
    interval: float,
    filter: Optional[Dict[str, Any]] = None,
) -> List[str]:
    """Capture for ``duration`` seconds, printing each new record once.

    Returns:
        External ids of the records printed, in print order
    """
    seen: List[str] = []
    try:
        started = await session.start(filter=filter)
        typer.echo(f"Monitoring {started['endpoint_info']['ws_url']}", err=True)

        deadline = time.monotonic() + duration
        while time.monotonic() < deadline:
            await asyncio.sleep(interval)
            recent = session.list_recent(count=session.config.max_buffer_size, body_mode="omit")
            for record in reversed(recent["records"]):
                if record["id"] not in seen:
                    seen.append(record["id"])
                    _print_record(record)
    finally:
        await session.close()
    return seen


@app.callback()
def main():
    """
    netmon - capture and filter browser network traffic.

    Attaches to a Chromium instance over the DevTools protocol, keeps the
    most recent matching API requests in memory and answers queries about
    them.
    """
    pass


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"netmon v{__version__}")


@app.command()
def serve(
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to netmon.yaml")
    ] = None,

    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    ] = None,
):
    """
    Serve monitoring tools as JSON lines on stdin/stdout.

    Each input line is {"tool": <name>, "arguments": {...}}; each output line
    is {"ok": true, "result": ...} or {"ok": false, "error": {...}}. Send
    {"tool": "list_tools"} to get the tool schemas.
    """
    config = load_settings(config_path, log_level)
    dispatcher = ToolDispatcher(MonitorSession(config))

    try:
        asyncio.run(serve_stream(dispatcher))
    except KeyboardInterrupt:
        typer.echo("❌ Interrupted by user", err=True)
        raise typer.Exit(code=ExitCode.RUNTIME_ERROR.value)


@app.command()
def watch(
    duration: Annotated[
        float,
        typer.Option("--duration", "-d", min=0.1, help="Seconds to capture")
    ] = 30.0,

    interval: Annotated[
        float,
        typer.Option("--interval", "-i", min=0.05, help="Seconds between buffer polls")
    ] = 1.0,

    content_types: Annotated[
        Optional[List[str]],
        typer.Option("--content-type", "-t", help="Content type to keep (repeatable, 'all' for any)")
    ] = None,

    url_patterns: Annotated[
        Optional[List[str]],
        typer.Option("--url", "-u", help="URL regex to keep (repeatable)")
    ] = None,

    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to netmon.yaml")
    ] = None,

    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    ] = None,
):
    """
    Capture traffic for a while and print each matching request.
    """
    config = load_settings(config_path, log_level)

    filter: Optional[Dict[str, Any]] = None
    if content_types or url_patterns:
        filter = config.filter.to_public()
        if content_types:
            filter["content_types"] = "all" if "all" in content_types else content_types
        if url_patterns:
            filter["url_include_patterns"] = url_patterns

    try:
        seen = asyncio.run(watch_session(MonitorSession(config), duration, interval, filter))
    except NetmonError as e:
        typer.echo(f"❌ {type(e).__name__}: {e}", err=True)
        raise typer.Exit(code=ExitCode.RUNTIME_ERROR.value)
    except KeyboardInterrupt:
        typer.echo("❌ Interrupted by user", err=True)
        raise typer.Exit(code=ExitCode.RUNTIME_ERROR.value)

    typer.echo(f"Captured {len(seen)} requests", err=True)


if __name__ == "__main__":
    app()
