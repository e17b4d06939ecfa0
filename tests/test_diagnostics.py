"""Tests for diagnostic parsing and collection."""

import pytest

from conftest import FakeNvim
from nvim_lsp_mcp.diagnostics import (
    DiagnosticItem,
    DiagnosticsCollector,
    Severity,
    parse_diagnostic,
    parse_diagnostics,
)
from nvim_lsp_mcp.errors import CollectionError, RemoteCallError


class TestSeverity:
    """Tests for Severity.from_code."""

    @pytest.mark.parametrize(
        "code,expected",
        [(1, Severity.ERROR), (2, Severity.WARNING), (3, Severity.INFO), (4, Severity.HINT)],
    )
    def test_known_codes(self, code: int, expected: Severity) -> None:
        """Test that 1-4 map to error, warning, info and hint."""
        assert Severity.from_code(code) is expected

    def test_float_codes_from_json(self) -> None:
        """Test that integral floats are accepted."""
        assert Severity.from_code(2.0) is Severity.WARNING

    @pytest.mark.parametrize("code", [0, 5, -1, 1.5, "1", None, True])
    def test_other_values_are_unknown(self, code) -> None:
        """Test that anything else maps to unknown."""
        assert Severity.from_code(code) is Severity.UNKNOWN


class TestParseDiagnostic:
    """Tests for parse_diagnostic."""

    def test_full_item(self) -> None:
        """Test parsing an item with every field present."""
        item = parse_diagnostic(
            {
                "severity": 1,
                "lnum": 4,
                "col": 2,
                "end_lnum": 4,
                "end_col": 9,
                "message": "undefined: foo",
                "source": "compiler",
                "code": "UndeclaredName",
            }
        )

        assert item == DiagnosticItem(
            severity=Severity.ERROR,
            line=4,
            col=2,
            message="undefined: foo",
            end_line=4,
            end_col=9,
            source="compiler",
            code="UndeclaredName",
        )

    def test_column_defaults_to_zero(self) -> None:
        """Test that a missing column becomes 0."""
        item = parse_diagnostic({"severity": 2, "lnum": 0, "message": "m"})

        assert item is not None
        assert item.col == 0
        assert item.end_line is None
        assert item.source is None
        assert item.code is None

    def test_numeric_code_rendered_as_string(self) -> None:
        """Test that numeric codes are stored as their string form."""
        assert parse_diagnostic({"severity": 1, "lnum": 0, "message": "m", "code": 2304}).code == "2304"
        assert parse_diagnostic({"severity": 1, "lnum": 0, "message": "m", "code": 7.0}).code == "7"

    @pytest.mark.parametrize(
        "raw",
        [
            {"lnum": 0, "message": "no severity"},
            {"severity": 9, "lnum": 0, "message": "bad severity"},
            {"severity": 1, "message": "no line"},
            {"severity": 1, "lnum": -1, "message": "negative line"},
            {"severity": 1, "lnum": 0},
            {"severity": 1, "lnum": 0, "message": ""},
            {"severity": 1, "lnum": 0, "message": 42},
            "not a table",
        ],
    )
    def test_unusable_items_are_dropped(self, raw) -> None:
        """Test that items missing required fields yield None."""
        assert parse_diagnostic(raw) is None

    def test_parse_keeps_order_and_drops_bad_items(self) -> None:
        """Test that one bad item does not affect its neighbours."""
        items = parse_diagnostics(
            [
                {"severity": 1, "lnum": 3, "message": "first"},
                {"severity": 7, "lnum": 1, "message": "dropped"},
                {"severity": 4, "lnum": 0, "message": "second"},
            ]
        )

        assert [i.message for i in items] == ["first", "second"]
        assert all(i.severity is not Severity.UNKNOWN for i in items)

    def test_empty_source_is_none(self) -> None:
        """Test that an empty source label is treated as absent."""
        assert parse_diagnostic({"severity": 1, "lnum": 0, "message": "m", "source": ""}).source is None


class TestDiagnosticsCollector:
    """Tests for DiagnosticsCollector.collect."""

    def test_collects_in_buffer_order(self, connect) -> None:
        """Test that output follows buffer order, then item order."""
        fake = FakeNvim(
            buffers={3: "/repo/b.go", 1: "/repo/a.go"},
            diagnostics={
                3: [{"severity": 2, "lnum": 9, "message": "b1"}],
                1: [
                    {"severity": 1, "lnum": 5, "message": "a1"},
                    {"severity": 1, "lnum": 1, "message": "a2"},
                ],
            },
        )

        results = DiagnosticsCollector().collect(connect(fake))

        assert [r.file for r in results] == ["/repo/b.go", "/repo/a.go"]
        assert [d.message for d in results[1].diagnostics] == ["a1", "a2"]

    def test_skips_unnamed_invalid_and_empty_buffers(self, connect) -> None:
        """Test that unnamed, invalid and diagnostic-free buffers are omitted."""
        fake = FakeNvim(
            buffers={1: "", 2: "/repo/invalid.go", 3: "/repo/clean.go", 4: "/repo/dirty.go"},
            diagnostics={
                1: [{"severity": 1, "lnum": 0, "message": "unnamed"}],
                2: [{"severity": 1, "lnum": 0, "message": "invalid"}],
                4: [{"severity": 1, "lnum": 0, "message": "kept"}],
            },
        )
        fake.invalid.add(2)

        results = DiagnosticsCollector().collect(connect(fake))

        assert [r.file for r in results] == ["/repo/dirty.go"]

    def test_buffer_with_only_bad_items_is_omitted(self, connect) -> None:
        """Test that a buffer whose items are all dropped contributes nothing."""
        fake = FakeNvim(
            buffers={1: "/repo/a.go"},
            diagnostics={1: [{"severity": 0, "lnum": 0, "message": "x"}]},
        )

        assert DiagnosticsCollector().collect(connect(fake)) == []

    def test_file_filter(self, connect) -> None:
        """Test that only requested files are read."""
        fake = FakeNvim(
            buffers={1: "/repo/a.go", 2: "/repo/b.go"},
            diagnostics={
                1: [{"severity": 1, "lnum": 0, "message": "a"}],
                2: [{"severity": 1, "lnum": 0, "message": "b"}],
            },
        )

        results = DiagnosticsCollector().collect(connect(fake), ["/repo/b.go"])

        assert [r.file for r in results] == ["/repo/b.go"]
        assert fake.lua_calls == [("get_buffer_diagnostics.lua", (2,))]

    def test_empty_file_filter_collects_nothing(self, connect) -> None:
        """Test that an explicit empty list matches no buffer."""
        fake = FakeNvim(
            buffers={1: "/repo/a.go"},
            diagnostics={1: [{"severity": 1, "lnum": 0, "message": "a"}]},
        )

        assert DiagnosticsCollector().collect(connect(fake), []) == []

    def test_malformed_payload_skips_only_that_buffer(self, connect) -> None:
        """Test that undecodable diagnostics skip one buffer, not the request."""
        fake = FakeNvim(
            buffers={1: "/repo/a.go", 2: "/repo/b.go"},
            diagnostics={1: "{not json", 2: [{"severity": 1, "lnum": 0, "message": "b"}]},
        )

        results = DiagnosticsCollector().collect(connect(fake))

        assert [r.file for r in results] == ["/repo/b.go"]

    def test_failing_name_lookup_skips_buffer(self, connect) -> None:
        """Test that a per-buffer RPC error is not fatal."""
        fake = FakeNvim(buffers={1: "/repo/a.go"})
        fake.failures["nvim_buf_get_name"] = RuntimeError("boom")

        assert DiagnosticsCollector().collect(connect(fake)) == []

    def test_enumeration_failure_is_fatal(self, connect) -> None:
        """Test that failing to list buffers raises CollectionError."""
        fake = FakeNvim()
        fake.failures["nvim_list_bufs"] = RuntimeError("gone")

        with pytest.raises(CollectionError, match="failed to list buffers"):
            DiagnosticsCollector().collect(connect(fake))

    def test_collection_error_is_request_level(self) -> None:
        """Test that CollectionError is not mistaken for an RPC failure."""
        assert not issubclass(CollectionError, RemoteCallError)
