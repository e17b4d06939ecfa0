"""Tests for diagnostics formatting."""

import json

import pytest

from nvim_lsp_mcp.diagnostics import DiagnosticItem, FileDiagnostics, Severity
from nvim_lsp_mcp.errors import FormatError
from nvim_lsp_mcp.formatter import DiagnosticsFormatter, format_line


def _item(**kwargs) -> DiagnosticItem:
    defaults = {"severity": Severity.ERROR, "line": 4, "col": 2, "message": "undefined: foo"}
    defaults.update(kwargs)
    return DiagnosticItem(**defaults)


class TestFormatLine:
    """Tests for format_line."""

    def test_positions_are_one_based(self) -> None:
        """Test that zero-based line 4, col 2 renders as 5:3."""
        assert format_line("/repo/a.go", _item()) == "/repo/a.go:5:3: ERROR: undefined: foo"

    def test_source_and_code_suffixes(self) -> None:
        """Test the optional (source) and [code] segments."""
        line = format_line("/repo/a.ts", _item(severity=Severity.WARNING, source="tsserver", code="6133"))

        assert line == "/repo/a.ts:5:3: WARNING: undefined: foo (tsserver) [6133]"

    def test_code_without_source(self) -> None:
        """Test that a missing source omits only its segment."""
        line = format_line("/repo/a.py", _item(severity=Severity.HINT, code="E501"))

        assert line == "/repo/a.py:5:3: HINT: undefined: foo [E501]"


class TestDiagnosticsFormatter:
    """Tests for DiagnosticsFormatter."""

    results = [
        FileDiagnostics("/repo/a.go", [_item(), _item(severity=Severity.INFO, line=0, col=0, message="note")]),
        FileDiagnostics("/repo/b.go", [_item(end_line=4, end_col=7, source="gopls")]),
    ]

    def test_text_output_groups_by_file_in_order(self) -> None:
        """Test one line per diagnostic in collector order."""
        output = DiagnosticsFormatter("text").format(self.results)

        assert output.splitlines() == [
            "/repo/a.go:5:3: ERROR: undefined: foo",
            "/repo/a.go:1:1: INFO: note",
            "/repo/b.go:5:3: ERROR: undefined: foo (gopls)",
        ]

    def test_json_output_keeps_zero_based_positions(self) -> None:
        """Test the structured shape."""
        data = json.loads(DiagnosticsFormatter("json").format(self.results))

        assert [entry["file"] for entry in data] == ["/repo/a.go", "/repo/b.go"]
        assert data[1]["diagnostics"][0] == {
            "severity": "error",
            "message": "undefined: foo",
            "source": "gopls",
            "code": None,
            "line": 4,
            "col": 2,
            "end_line": 4,
            "end_col": 7,
        }

    def test_empty_results(self) -> None:
        """Test that no diagnostics give empty output rather than an error."""
        assert DiagnosticsFormatter("text").format([]) == ""
        assert DiagnosticsFormatter("json").format([]) == "[]"

    def test_output_is_idempotent(self) -> None:
        """Test that formatting the same data twice is byte-identical."""
        for mode in ("text", "json"):
            formatter = DiagnosticsFormatter(mode)
            assert formatter.format(self.results) == formatter.format(self.results)

    def test_malformed_input_raises_format_error(self) -> None:
        """Test that non-record input is rejected with context."""
        with pytest.raises(FormatError):
            DiagnosticsFormatter("text").format([{"file": "/repo/a.go"}])  # type: ignore[list-item]
        with pytest.raises(FormatError):
            DiagnosticsFormatter("json").format([FileDiagnostics("/repo/a.go", ["oops"])])  # type: ignore[list-item]

    def test_unknown_mode_rejected(self) -> None:
        """Test that only text and json are accepted."""
        with pytest.raises(ValueError):
            DiagnosticsFormatter("csv")
