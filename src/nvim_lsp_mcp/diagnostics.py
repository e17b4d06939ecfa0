"""Diagnostic records and their collection from Neovim buffers."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from nvim_lsp_mcp.config.constants import CONSTANTS
from nvim_lsp_mcp.errors import (
    CollectionError,
    RemoteCallError,
    RemoteTimeoutError,
    RequestCancelledError,
)
from nvim_lsp_mcp.nvim_client import RemoteClient
from nvim_lsp_mcp.scripts import (
    GET_BUFFER_DIAGNOSTICS,
    ScriptProtocolError,
    decode_diagnostics_list,
    load_script,
)

logger = logging.getLogger("nvim-lsp-mcp.diagnostics")


class Severity(str, Enum):
    """Diagnostic severity as reported by ``vim.diagnostic.severity``."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"
    UNKNOWN = "unknown"

    @classmethod
    def from_code(cls, code: Any) -> "Severity":
        """Map a numeric severity (1=error .. 4=hint) to a Severity."""
        value = _as_int(code)
        name = CONSTANTS.SEVERITY_NAMES.get(value) if value is not None else None
        return cls(name) if name else cls.UNKNOWN


@dataclass(frozen=True)
class DiagnosticItem:
    """A single diagnostic. Positions are zero-based."""

    severity: Severity
    line: int
    col: int
    message: str
    end_line: int | None = None
    end_col: int | None = None
    source: str | None = None
    code: str | None = None


@dataclass
class FileDiagnostics:
    """Diagnostics for one buffer, in the order Neovim returned them."""

    file: str
    diagnostics: list[DiagnosticItem] = field(default_factory=list)


def _as_int(value: Any) -> int | None:
    """Return an integral value as int, or None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _code_to_str(code: Any) -> str | None:
    """Render a diagnostic code as text regardless of its original type."""
    if code is None:
        return None
    if isinstance(code, float) and code.is_integer():
        code = int(code)
    text = str(code)
    return text or None


def parse_diagnostic(raw: Any) -> DiagnosticItem | None:
    """Build a DiagnosticItem from a decoded ``vim.Diagnostic`` table.

    Severity, line and message are required; an item lacking any of them, or
    carrying a severity outside 1-4, yields None so only that item is dropped.

    Args:
        raw: One element of the decoded ``vim.diagnostic.get()`` list.

    Returns:
        The parsed item, or None if it is unusable.
    """
    if not isinstance(raw, dict):
        return None

    severity = Severity.from_code(raw.get("severity"))
    if severity is Severity.UNKNOWN:
        return None

    line = _as_int(raw.get("lnum"))
    if line is None or line < 0:
        return None

    message = raw.get("message")
    if not isinstance(message, str) or not message:
        return None

    col = _as_int(raw.get("col"))
    if col is None or col < 0:
        col = 0

    source = raw.get("source")
    if not isinstance(source, str) or not source:
        source = None

    return DiagnosticItem(
        severity=severity,
        line=line,
        col=col,
        message=message,
        end_line=_as_int(raw.get("end_lnum")),
        end_col=_as_int(raw.get("end_col")),
        source=source,
        code=_code_to_str(raw.get("code")),
    )


def parse_diagnostics(raw_items: list[Any]) -> list[DiagnosticItem]:
    """Parse raw items, dropping the unusable ones and keeping order."""
    items: list[DiagnosticItem] = []
    for raw in raw_items:
        item = parse_diagnostic(raw)
        if item is not None:
            items.append(item)
    return items


def buffer_handle(buffer: Any) -> Any:
    """Return the integer handle of a pynvim Buffer (or a plain handle)."""
    return getattr(buffer, "handle", buffer)


class DiagnosticsCollector:
    """Reads current diagnostics for every named buffer in a session."""

    def collect(
        self, client: RemoteClient, files: list[str] | None = None
    ) -> list[FileDiagnostics]:
        """Collect diagnostics for the session's buffers.

        Args:
            client: Connected client for the validated session.
            files: When given, only buffers whose name is in this list are
                read. None reads every named buffer.

        Returns:
            One entry per buffer with at least one valid diagnostic, in
            buffer enumeration order.

        Raises:
            CollectionError: If buffers cannot be listed or the connection
                stops responding.
            RequestCancelledError: If the request was cancelled.
        """
        try:
            buffers = client.call("nvim_list_bufs")
        except RequestCancelledError:
            raise
        except RemoteCallError as e:
            raise CollectionError(f"failed to list buffers: {e}") from e
        if not isinstance(buffers, list):
            raise CollectionError(
                f"nvim_list_bufs returned {type(buffers).__name__}, expected list"
            )

        logger.info(f"nvim: buffers_total={len(buffers)}")
        if not buffers:
            logger.warning("nvim: no buffers returned by nvim_list_bufs")

        wanted = set(files) if files is not None else None
        script = load_script(GET_BUFFER_DIAGNOSTICS)
        results: list[FileDiagnostics] = []
        for buffer in buffers:
            entry = self._collect_buffer(client, buffer, wanted, script)
            if entry is not None:
                results.append(entry)

        total = sum(len(entry.diagnostics) for entry in results)
        logger.info(f"nvim: diagnostics_total={total} files={len(results)}")
        return results

    def _collect_buffer(
        self,
        client: RemoteClient,
        buffer: Any,
        wanted: set[str] | None,
        script: str,
    ) -> FileDiagnostics | None:
        """Read one buffer. Failures skip the buffer; only cancellation and timeouts escape."""
        handle = buffer_handle(buffer)
        try:
            if not client.call("nvim_buf_is_valid", buffer):
                return None
            name = client.call("nvim_buf_get_name", buffer)
            if not isinstance(name, str) or not name:
                return None
            if wanted is not None and name not in wanted:
                return None
            raw_items = decode_diagnostics_list(client.exec_lua(script, handle))
        except RequestCancelledError:
            raise
        except RemoteTimeoutError as e:
            raise CollectionError(f"buffer {handle}: {e}") from e
        except (RemoteCallError, ScriptProtocolError) as e:
            logger.error(f"nvim: reading buffer {handle} failed: {e}")
            return None

        items = parse_diagnostics(raw_items)
        if len(items) < len(raw_items):
            logger.info(f"nvim: {name}: dropped {len(raw_items) - len(items)} malformed item(s)")
        if not items:
            return None
        return FileDiagnostics(file=name, diagnostics=items)
