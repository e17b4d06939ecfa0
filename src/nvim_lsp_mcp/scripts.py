"""Lua scripts executed inside Neovim, and decoding of their results.

Each script lives in ``nvim_lsp_mcp/lua`` and receives its arguments as
``...``. Scripts that return data encode it with ``vim.json.encode``.
Protocol version 1:

``filter_supported_files.lua``
    args: ``(paths: list[str], ambiguous_exts: list[str])``
    returns: ``{"version": 1, "supported": [path, ...],
    "unsupported_count": int, "filetypes": {path: filetype}}``

``refresh_buffers.lua``
    args: ``(paths: list[str])``
    returns: nothing. Reload and ``didSave`` notifications are scheduled
    inside Neovim and complete asynchronously.

``get_buffer_diagnostics.lua``
    args: ``(bufnr: int)``
    returns: JSON array of ``vim.Diagnostic`` tables. Lua cannot tell an
    empty array from an empty map, so no diagnostics arrives as ``{}``.

``diagnostics_snapshot.lua``
    args: ``(paths: list[str])``
    returns: ``{"version": 1, "buffers": {path: {"tick": int, "count": int}}}``
"""

import json
from dataclasses import dataclass, field
from functools import lru_cache
from importlib import resources
from typing import Any

SCRIPT_PROTOCOL_VERSION = 1

FILTER_SUPPORTED_FILES = "filter_supported_files.lua"
REFRESH_BUFFERS = "refresh_buffers.lua"
GET_BUFFER_DIAGNOSTICS = "get_buffer_diagnostics.lua"
DIAGNOSTICS_SNAPSHOT = "diagnostics_snapshot.lua"


class ScriptProtocolError(ValueError):
    """A script returned a payload that does not match its protocol."""


@dataclass
class FilterResult:
    """Decoded result of ``filter_supported_files.lua``."""

    supported: list[str] = field(default_factory=list)
    unsupported_count: int = 0
    filetypes: dict[str, str] = field(default_factory=dict)


@lru_cache(maxsize=None)
def load_script(name: str) -> str:
    """Read a bundled Lua script by file name."""
    return resources.files("nvim_lsp_mcp").joinpath("lua", name).read_text(encoding="utf-8")


def decode_json(payload: Any, script: str) -> Any:
    """Decode a JSON string returned by a script.

    Returns:
        The decoded value, or None for an empty or ``null`` payload.

    Raises:
        ScriptProtocolError: If the payload is not a JSON string.
    """
    if payload is None:
        return None
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    if not isinstance(payload, str):
        raise ScriptProtocolError(
            f"{script}: expected JSON string, got {type(payload).__name__}"
        )
    if payload.strip() in ("", "null"):
        return None
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise ScriptProtocolError(f"{script}: invalid JSON: {e}") from e


def _versioned_object(payload: Any, script: str) -> dict[str, Any]:
    data = decode_json(payload, script)
    if not isinstance(data, dict):
        raise ScriptProtocolError(f"{script}: expected object, got {type(data).__name__}")
    version = data.get("version")
    if version != SCRIPT_PROTOCOL_VERSION:
        raise ScriptProtocolError(
            f"{script}: protocol version {version!r}, expected {SCRIPT_PROTOCOL_VERSION}"
        )
    return data


def _as_list(value: Any) -> list[Any]:
    # An empty Lua table is encoded as {}
    if value == {} or value is None:
        return []
    if not isinstance(value, list):
        raise ScriptProtocolError(f"expected array, got {type(value).__name__}")
    return value


def decode_filter_result(payload: Any) -> FilterResult:
    """Decode the ``filter_supported_files.lua`` payload."""
    data = _versioned_object(payload, FILTER_SUPPORTED_FILES)
    supported = _as_list(data.get("supported"))
    if not all(isinstance(p, str) for p in supported):
        raise ScriptProtocolError(f"{FILTER_SUPPORTED_FILES}: non-string path in 'supported'")
    unsupported = data.get("unsupported_count", 0)
    if isinstance(unsupported, bool) or not isinstance(unsupported, int):
        raise ScriptProtocolError(f"{FILTER_SUPPORTED_FILES}: invalid 'unsupported_count'")
    filetypes = data.get("filetypes") or {}
    if not isinstance(filetypes, dict):
        raise ScriptProtocolError(f"{FILTER_SUPPORTED_FILES}: invalid 'filetypes'")
    return FilterResult(
        supported=supported,
        unsupported_count=unsupported,
        filetypes={str(k): str(v) for k, v in filetypes.items()},
    )


def decode_diagnostics_list(payload: Any) -> list[Any]:
    """Decode the ``get_buffer_diagnostics.lua`` payload into raw items."""
    data = decode_json(payload, GET_BUFFER_DIAGNOSTICS)
    try:
        return _as_list(data)
    except ScriptProtocolError as e:
        raise ScriptProtocolError(f"{GET_BUFFER_DIAGNOSTICS}: {e}") from e


def decode_snapshot(payload: Any) -> dict[str, tuple[int, int]]:
    """Decode the ``diagnostics_snapshot.lua`` payload.

    Returns:
        Mapping of path to ``(changedtick, diagnostic count)``.
    """
    data = _versioned_object(payload, DIAGNOSTICS_SNAPSHOT)
    buffers = data.get("buffers") or {}
    if not isinstance(buffers, dict):
        raise ScriptProtocolError(f"{DIAGNOSTICS_SNAPSHOT}: invalid 'buffers'")
    snapshot: dict[str, tuple[int, int]] = {}
    for path, entry in buffers.items():
        if not isinstance(entry, dict):
            raise ScriptProtocolError(f"{DIAGNOSTICS_SNAPSHOT}: invalid entry for {path}")
        snapshot[str(path)] = (entry.get("tick", 0), entry.get("count", 0))
    return snapshot
