"""Exceptions raised by the diagnostics pipeline."""


class NvimLspMcpError(Exception):
    """Base class for all request-level failures."""


class SessionNotFoundError(NvimLspMcpError):
    """No reachable Neovim session matches the requested workspace."""


class SessionValidationError(NvimLspMcpError):
    """A session was reached but its working directory is not the workspace."""

    def __init__(self, expected: str, actual: str):
        super().__init__(f"nvim cwd mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class RemoteCallError(NvimLspMcpError):
    """An RPC call to the Neovim session failed."""


class RequestCancelledError(RemoteCallError):
    """The caller cancelled the request before the remote call completed."""


class RemoteTimeoutError(RemoteCallError):
    """The remote call did not complete within the request timeout."""


class RefreshWarning(NvimLspMcpError):
    """Refreshing buffers failed; stale diagnostics may still be collected."""


class CollectionError(NvimLspMcpError):
    """Buffers or their diagnostics could not be read."""


class FormatError(NvimLspMcpError):
    """Collected diagnostics could not be rendered."""


class InvalidRequestError(NvimLspMcpError):
    """The request arguments are missing or malformed."""
