"""Rendering of collected diagnostics as text or JSON."""

import json
from typing import Any

from nvim_lsp_mcp.config.constants import CONSTANTS
from nvim_lsp_mcp.diagnostics import DiagnosticItem, FileDiagnostics, Severity
from nvim_lsp_mcp.errors import FormatError


def format_line(file_path: str, item: DiagnosticItem) -> str:
    """Format one diagnostic as ``file:line:col: SEVERITY: message``.

    Line and column are converted to 1-based. `` (source)`` and `` [code]``
    are appended only when present.
    """
    line = f"{file_path}:{item.line + 1}:{item.col + 1}: {item.severity.value.upper()}: {item.message}"
    if item.source:
        line += f" ({item.source})"
    if item.code:
        line += f" [{item.code}]"
    return line


def diagnostic_to_dict(item: DiagnosticItem) -> dict[str, Any]:
    """Convert a diagnostic to its structured form, keeping 0-based positions."""
    return {
        "severity": item.severity.value,
        "message": item.message,
        "source": item.source,
        "code": item.code,
        "line": item.line,
        "col": item.col,
        "end_line": item.end_line,
        "end_col": item.end_col,
    }


def _check(results: Any) -> None:
    if not isinstance(results, list):
        raise FormatError(f"expected a list of file diagnostics, got {type(results).__name__}")
    for index, entry in enumerate(results):
        if not isinstance(entry, FileDiagnostics) or not isinstance(entry.file, str):
            raise FormatError(f"entry {index} is not a FileDiagnostics record")
        for item in entry.diagnostics:
            if not isinstance(item, DiagnosticItem) or not isinstance(item.severity, Severity):
                raise FormatError(f"{entry.file}: malformed diagnostic {item!r}")


class DiagnosticsFormatter:
    """Renders diagnostics in the output mode chosen for the deployment."""

    def __init__(self, output_mode: str = CONSTANTS.OUTPUT_TEXT):
        if output_mode not in CONSTANTS.OUTPUT_MODES:
            raise ValueError(f"unknown output mode {output_mode!r}")
        self.output_mode = output_mode

    def format(self, results: list[FileDiagnostics]) -> str:
        """Render results in the configured mode.

        Raises:
            FormatError: If ``results`` is malformed.
        """
        if self.output_mode == CONSTANTS.OUTPUT_JSON:
            return self.format_json(results)
        return self.format_text(results)

    def format_text(self, results: list[FileDiagnostics]) -> str:
        """One compiler-style line per diagnostic; empty string when there are none."""
        _check(results)
        lines: list[str] = []
        for entry in results:
            for item in entry.diagnostics:
                lines.append(format_line(entry.file, item))
        return "\n".join(lines)

    def format_json(self, results: list[FileDiagnostics]) -> str:
        """Diagnostics grouped by file as a JSON array."""
        _check(results)
        data = [
            {"file": entry.file, "diagnostics": [diagnostic_to_dict(d) for d in entry.diagnostics]}
            for entry in results
        ]
        try:
            return json.dumps(data, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise FormatError(f"cannot encode diagnostics as JSON: {e}") from e
