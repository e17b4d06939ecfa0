"""Shared fixtures: an in-memory stand-in for a pynvim session."""

import json
from typing import Any, Callable

import pytest

from nvim_lsp_mcp.config.settings import Settings
from nvim_lsp_mcp.nvim_client import RemoteClient
from nvim_lsp_mcp.scripts import (
    DIAGNOSTICS_SNAPSHOT,
    FILTER_SUPPORTED_FILES,
    GET_BUFFER_DIAGNOSTICS,
    REFRESH_BUFFERS,
    load_script,
)

SCRIPT_NAMES = (FILTER_SUPPORTED_FILES, REFRESH_BUFFERS, GET_BUFFER_DIAGNOSTICS, DIAGNOSTICS_SNAPSHOT)


class FakeNvim:
    """Minimal pynvim.Nvim replacement driven by plain dictionaries."""

    def __init__(
        self,
        cwd: str = "/repo",
        buffers: dict[int, str] | None = None,
        diagnostics: dict[int, Any] | None = None,
        served_extensions: tuple[str, ...] = (),
    ):
        self.cwd = cwd
        self.buffers = buffers or {}
        self.diagnostics = diagnostics or {}
        self.served_extensions = served_extensions
        self.invalid: set[int] = set()
        self.failures: dict[str, Exception] = {}
        self.requests: list[tuple[str, tuple[Any, ...]]] = []
        self.lua_calls: list[tuple[str, tuple[Any, ...]]] = []
        self.snapshots: list[dict[str, Any]] = []
        self.closed = False

    def _fail(self, key: str) -> None:
        if key in self.failures:
            raise self.failures[key]

    def eval(self, expression: str) -> Any:
        self._fail("eval")
        if expression == "getcwd()":
            return self.cwd
        raise ValueError(f"unsupported expression {expression}")

    def request(self, method: str, *args: Any) -> Any:
        self.requests.append((method, args))
        self._fail(method)
        if method == "nvim_list_bufs":
            return list(self.buffers)
        if method == "nvim_buf_is_valid":
            return args[0] not in self.invalid
        if method == "nvim_buf_get_name":
            return self.buffers[args[0]]
        raise ValueError(f"unsupported method {method}")

    def exec_lua(self, code: str, *args: Any) -> Any:
        name = next(n for n in SCRIPT_NAMES if load_script(n) == code)
        self.lua_calls.append((name, args))
        self._fail(name)
        if name == GET_BUFFER_DIAGNOSTICS:
            items = self.diagnostics.get(args[0], [])
            if isinstance(items, str):
                return items
            return json.dumps(items) if items else "{}"
        if name == FILTER_SUPPORTED_FILES:
            paths = args[0]
            supported = [p for p in paths if p.rsplit(".", 1)[-1] in self.served_extensions]
            return json.dumps(
                {
                    "version": 1,
                    "supported": supported or {},
                    "unsupported_count": len(paths) - len(supported),
                    "filetypes": {},
                }
            )
        if name == DIAGNOSTICS_SNAPSHOT:
            # The last snapshot repeats once the queue is drained
            if len(self.snapshots) > 1:
                buffers = self.snapshots.pop(0)
            else:
                buffers = self.snapshots[0] if self.snapshots else {}
            return json.dumps({"version": 1, "buffers": buffers})
        return None

    def close(self) -> None:
        self.closed = True

    def lua_names(self) -> list[str]:
        return [name for name, _ in self.lua_calls]


def make_attach(sessions: dict[str, Any]) -> Callable[[str], Any]:
    """Build an attach function; unknown addresses or Exception values fail to dial."""

    def attach(address: str) -> Any:
        session = sessions.get(address)
        if session is None:
            raise FileNotFoundError(f"no socket at {address}")
        if isinstance(session, Exception):
            raise session
        return session

    return attach


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment and the real temp directories."""
    return Settings(
        address=None,
        log_file=None,
        max_files=100,
        output_mode="text",
        settle_mode="fixed",
        settle_seconds=0.0,
        request_timeout=5.0,
        tmp_dir=str(tmp_path / "tmp"),
        search_roots=(),
        runtime_dir=None,
        platform="test",
    )


@pytest.fixture
def connect():
    """Connect a RemoteClient to a FakeNvim; clients are closed after the test."""
    clients: list[RemoteClient] = []

    def _connect(fake: FakeNvim, **kwargs: Any) -> RemoteClient:
        client = RemoteClient("/fake.sock", attach=make_attach({"/fake.sock": fake}), **kwargs)
        clients.append(client.connect())
        return client

    yield _connect
    for client in clients:
        client.close()
