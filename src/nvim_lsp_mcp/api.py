"""Library API: one diagnostics request against a running Neovim session."""

import logging
import os
import threading
from enum import Enum

from nvim_lsp_mcp.config.settings import Settings
from nvim_lsp_mcp.diagnostics import DiagnosticsCollector, FileDiagnostics
from nvim_lsp_mcp.discovery import SessionLocator
from nvim_lsp_mcp.errors import InvalidRequestError, NvimLspMcpError, SessionValidationError
from nvim_lsp_mcp.formatter import DiagnosticsFormatter
from nvim_lsp_mcp.logging_config import log_timing
from nvim_lsp_mcp.nvim_client import AttachFn
from nvim_lsp_mcp.refresher import DiagnosticsRefresher, GitRunner, RefreshResult
from nvim_lsp_mcp.utils import split_by_workspace

logger = logging.getLogger("nvim-lsp-mcp.api")


class RequestState(str, Enum):
    """Stages of a diagnostics request."""

    IDLE = "idle"
    LOCATING = "locating"
    VALIDATING = "validating"
    REFRESHING = "refreshing"
    COLLECTING = "collecting"
    FORMATTING = "formatting"
    DONE = "done"
    ERROR = "error"


def validate_request(workspace: str, files: list[str] | None) -> list[str]:
    """Check request arguments and return the file list (possibly empty).

    Raises:
        InvalidRequestError: If the workspace is missing or not absolute, or
            ``files`` is not a list of strings.
    """
    if not isinstance(workspace, str) or not workspace.strip():
        raise InvalidRequestError("workspace is required")
    if not os.path.isabs(workspace):
        raise InvalidRequestError(f"workspace must be an absolute path, got {workspace!r}")
    if files is None:
        return []
    if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
        raise InvalidRequestError("files must be a list of absolute paths")
    return [f for f in files if f.strip()]


class DiagnosticsPipeline:
    """Locate, validate, refresh, collect and format, one request at a time.

    The session is owned by a single ``run()`` call and closed on every exit
    path. Refresh problems are downgraded to warnings; everything else
    surfaces as a NvimLspMcpError.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cancel_event: threading.Event | None = None,
        attach: AttachFn | None = None,
        git_runner: GitRunner | None = None,
    ):
        self.settings = settings or Settings()
        self.cancel_event = cancel_event or threading.Event()
        self.locator = SessionLocator(self.settings, self.cancel_event, attach=attach)
        self.refresher = DiagnosticsRefresher(self.settings, self.cancel_event, git_runner)
        self.collector = DiagnosticsCollector()
        self.formatter = DiagnosticsFormatter(self.settings.output_mode)
        self.state = RequestState.IDLE
        self.last_refresh: RefreshResult | None = None
        self.results: list[FileDiagnostics] = []

    def _transition(self, state: RequestState) -> None:
        logger.info(f"request: {self.state.value} -> {state.value}")
        self.state = state

    def collect(self, workspace: str, files: list[str] | None = None) -> list[FileDiagnostics]:
        """Run every stage except formatting.

        Raises:
            NvimLspMcpError: On any request-level failure.
        """
        files = validate_request(workspace, files)
        self.state = RequestState.IDLE
        self.last_refresh = None
        self.results = []
        try:
            self._transition(RequestState.LOCATING)
            with log_timing(logger, "locate"):
                client = self.locator.locate(workspace)

            with client:
                self._transition(RequestState.VALIDATING)
                cwd = client.get_cwd()
                if cwd != workspace:
                    raise SessionValidationError(workspace, cwd)

                self._transition(RequestState.REFRESHING)
                with log_timing(logger, "refresh"):
                    self.last_refresh = self.refresher.refresh(client, workspace, files)

                self._transition(RequestState.COLLECTING)
                self.refresher.settle(client, self.last_refresh)
                wanted = split_by_workspace(files, workspace)[0] if files else None
                with log_timing(logger, "collect"):
                    self.results = self.collector.collect(client, wanted)
        except NvimLspMcpError:
            self._transition(RequestState.ERROR)
            raise
        return self.results

    def run(self, workspace: str, files: list[str] | None = None) -> str:
        """Run the full request and return formatted output.

        Returns:
            Text or JSON per ``settings.output_mode``; empty text (or ``[]``)
            when there are no diagnostics.

        Raises:
            NvimLspMcpError: On any request-level failure.
        """
        results = self.collect(workspace, files)
        try:
            self._transition(RequestState.FORMATTING)
            output = self.formatter.format(results)
        except NvimLspMcpError:
            self._transition(RequestState.ERROR)
            raise
        self._transition(RequestState.DONE)
        if not results:
            logger.warning("no diagnostics returned from Neovim")
        return output


def get_diagnostics(
    workspace: str,
    files: list[str] | None = None,
    settings: Settings | None = None,
    cancel_event: threading.Event | None = None,
) -> str:
    """Get formatted diagnostics for a workspace from its Neovim session.

    Args:
        workspace: Absolute path; must equal the session's cwd.
        files: Optional absolute paths to refresh and report. When omitted,
            files changed against git HEAD are refreshed and every buffer is
            reported.
        settings: Runtime settings. Defaults to ``Settings()`` (environment).
        cancel_event: Set it from another thread to abort the request.

    Returns:
        Diagnostics in the configured output mode.

    Raises:
        NvimLspMcpError: If no session matches, validation fails, buffers
            cannot be listed, or output cannot be rendered.
    """
    return DiagnosticsPipeline(settings, cancel_event).run(workspace, files)
