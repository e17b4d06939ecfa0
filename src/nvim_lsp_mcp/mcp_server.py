"""MCP Server exposing Neovim LSP diagnostics."""

import atexit
import json
import logging
import os
import sys
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any

import anyio
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from nvim_lsp_mcp.api import DiagnosticsPipeline
from nvim_lsp_mcp.config.constants import CONSTANTS
from nvim_lsp_mcp.config.settings import Settings
from nvim_lsp_mcp.errors import InvalidRequestError, NvimLspMcpError
from nvim_lsp_mcp.logging_config import LOGGER_NAME, setup_logging

logger = logging.getLogger(LOGGER_NAME)

_settings: Settings | None = None
_settings_lock = threading.Lock()

# Set on shutdown so in-flight requests stop waiting on Neovim
_shutdown = threading.Event()
_in_flight: set[threading.Event] = set()
_in_flight_lock = threading.Lock()


def get_settings() -> Settings:
    """Return the process-wide settings, loading them from the environment once."""
    global _settings
    with _settings_lock:
        if _settings is None:
            _settings = Settings()
        return _settings


def configure(settings: Settings) -> None:
    """Replace the process-wide settings."""
    global _settings
    with _settings_lock:
        _settings = settings


def _cancel_in_flight() -> None:
    """Abort in-flight requests on shutdown."""
    _shutdown.set()
    with _in_flight_lock:
        for event in _in_flight:
            event.set()


atexit.register(_cancel_in_flight)

# Create MCP server
mcp = FastMCP("nvim-lsp")


def run_request(
    workspace: str,
    files: list[str] | None = None,
    cancel_event: threading.Event | None = None,
) -> str:
    """Run one diagnostics request with the process-wide settings.

    Args:
        workspace: Absolute workspace path.
        files: Optional absolute file paths.
        cancel_event: Set to abort this request. Shutdown sets it too.

    Raises:
        NvimLspMcpError: On any request-level failure.
    """
    event = cancel_event or threading.Event()
    with _in_flight_lock:
        _in_flight.add(event)
    if _shutdown.is_set():
        event.set()
    try:
        return DiagnosticsPipeline(get_settings(), cancel_event=event).run(workspace, files)
    finally:
        with _in_flight_lock:
            _in_flight.discard(event)


@mcp.tool(name="read-lints")
async def read_lints(workspace: str, files: list[str] | None = None) -> str:
    """Read linter diagnostics for a workspace from a running Neovim's LSP clients.

    Attaches to the Neovim session whose working directory equals the
    workspace, reloads the requested files (or files changed against git
    HEAD) so language servers re-analyze them, then returns diagnostics.

    Args:
        workspace: Absolute workspace path; must equal Neovim's cwd.
        files: Optional absolute file paths inside the workspace.

    Returns:
        Diagnostics as ``file:line:col: SEVERITY: message`` lines, or as JSON
        grouped by file, depending on server configuration.
    """
    logger.info(f"TOOL CALL: read_lints(workspace={workspace!r}, files={files!r})")
    cancel_event = threading.Event()
    try:
        # The pipeline blocks on RPC and settle waits, so it runs off the event loop
        return await anyio.to_thread.run_sync(
            run_request, workspace, files, cancel_event, abandon_on_cancel=True
        )
    except anyio.get_cancelled_exc_class():
        logger.info(f"read-lints cancelled by client for {workspace}")
        cancel_event.set()
        raise
    except NvimLspMcpError as e:
        logger.error(f"read-lints failed: {e}")
        raise ToolError(str(e)) from e
    except Exception as e:
        logger.exception("Error getting diagnostics")
        raise ToolError(f"unexpected error: {e}") from e


class DiagnosticsHTTPHandler(BaseHTTPRequestHandler):
    """HTTP request handler for diagnostics endpoint."""

    def log_message(self, format: str, *args: Any) -> None:
        """Route HTTP server logs to our logger instead of stderr."""
        logger.info(f"HTTP: {format % args}")

    def do_POST(self) -> None:
        """Handle POST requests."""
        if self.path != "/diagnostics":
            self._send_json(404, {"error": f"Not found: {self.path}"})
            return

        try:
            content_length = int(self.headers.get("Content-Length", 0))
            body = self.rfile.read(content_length).decode("utf-8")
            params = json.loads(body) if body else {}
        except (json.JSONDecodeError, ValueError) as e:
            self._send_json(400, {"error": f"Invalid JSON: {e}"})
            return
        if not isinstance(params, dict):
            self._send_json(400, {"error": "Request body must be a JSON object"})
            return

        workspace = params.get("workspace", "")
        files = params.get("files")
        logger.info(f"HTTP diagnostics request: workspace={workspace!r}, files={files!r}")

        try:
            output = run_request(workspace, files)
        except InvalidRequestError as e:
            self._send_json(400, {"error": str(e)})
            return
        except NvimLspMcpError as e:
            logger.error(f"HTTP diagnostics error: {e}")
            self._send_json(500, {"error": str(e)})
            return
        except Exception as e:
            logger.exception("HTTP diagnostics error")
            self._send_json(500, {"error": str(e)})
            return

        self._send_json(200, {"output": output})

    def _send_json(self, status: int, data: dict) -> None:
        """Send a JSON response."""
        body = json.dumps(data).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


def _start_http_server() -> HTTPServer | None:
    """Start the HTTP diagnostics server in a daemon thread when a port is configured.

    Returns:
        The HTTPServer instance, or None if disabled or it failed to start.
    """
    port_value = os.environ.get(CONSTANTS.ENV_HTTP_PORT, "")
    if not port_value.strip():
        return None

    try:
        port = int(port_value)
    except ValueError:
        logger.warning(f"Ignoring invalid {CONSTANTS.ENV_HTTP_PORT}={port_value!r}")
        return None

    try:
        server = HTTPServer(("127.0.0.1", port), DiagnosticsHTTPHandler)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        logger.info(f"HTTP diagnostics server listening on http://127.0.0.1:{port}")
        return server
    except OSError as e:
        logger.warning(f"Failed to start HTTP server on port {port}: {e}")
        return None


def main() -> None:
    """Run the MCP server."""
    try:
        settings = get_settings()
    except ValueError as e:
        setup_logging(os.environ.get(CONSTANTS.ENV_LOG_FILE) or None)
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)
    log_file = setup_logging(settings.log_file)

    logger.info("=" * 60)
    logger.info("Starting Neovim LSP MCP server")
    logger.info(f"Log file: {log_file}")
    logger.info(f"Process ID: {os.getpid()}")
    logger.info(
        f"Output mode: {settings.output_mode}, max files: {settings.max_files}, "
        f"settle: {settings.settle_mode} ({settings.settle_seconds:g}s)"
    )
    logger.info("=" * 60)

    http_server = _start_http_server()

    logger.info("Starting MCP server on stdio")
    try:
        mcp.run(transport="stdio")
    finally:
        _cancel_in_flight()
        if http_server:
            http_server.shutdown()


if __name__ == "__main__":
    main()
