"""Constants for the Neovim LSP MCP server."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Constants:
    """Application constants."""

    # Environment variables
    ENV_ADDRESS: str = "NVIM_LISTEN_ADDRESS"
    ENV_LOG_FILE: str = "NVIM_LSP_MCP_LOG_FILE"
    ENV_LOG_LEVEL: str = "LOG_LEVEL"
    ENV_MAX_FILES: str = "NVIM_LSP_MCP_MAX_FILES"
    ENV_OUTPUT_MODE: str = "NVIM_LSP_MCP_OUTPUT"
    ENV_SETTLE_MODE: str = "NVIM_LSP_MCP_SETTLE"
    ENV_SETTLE_SECONDS: str = "NVIM_LSP_MCP_SETTLE_SECONDS"
    ENV_TIMEOUT: str = "NVIM_LSP_MCP_TIMEOUT"
    ENV_HTTP_PORT: str = "NVIM_LSP_MCP_HTTP_PORT"
    ENV_TMPDIR: str = "TMPDIR"
    ENV_RUNTIME_DIR: str = "XDG_RUNTIME_DIR"

    # Refresh limits
    MAX_FILES_TO_RELOAD: int = 100

    # Extensions whose filetype depends on content, never cached per extension
    AMBIGUOUS_EXTENSIONS: tuple[str, ...] = ("conf",)

    # Timing values (in seconds)
    SETTLE_SECONDS: float = 3.0
    SETTLE_QUIET_SECONDS: float = 0.5
    SETTLE_POLL_INTERVAL: float = 0.25
    REQUEST_TIMEOUT: float = 30.0
    CANCEL_POLL_INTERVAL: float = 0.05
    CLOSE_TIMEOUT: float = 2.0
    GIT_TIMEOUT: float = 10.0

    # Output modes
    OUTPUT_TEXT: str = "text"
    OUTPUT_JSON: str = "json"
    OUTPUT_MODES: tuple[str, ...] = ("text", "json")

    # Settle strategies
    SETTLE_FIXED: str = "fixed"
    SETTLE_POLL: str = "poll"
    SETTLE_MODES: tuple[str, ...] = ("fixed", "poll")

    # Severity levels (vim.diagnostic.severity)
    SEVERITY_ERROR: int = 1
    SEVERITY_WARNING: int = 2
    SEVERITY_INFO: int = 3
    SEVERITY_HINT: int = 4

    # Temp roots always scanned after the configured temp dir
    SOCKET_SEARCH_ROOTS: tuple[str, ...] = ("/tmp",)

    # Socket globs relative to a temp root; newer Neovim uses
    # nvim.<user>/<rand>/nvim.<pid>.0, older releases nvim<rand>/0
    TMP_SOCKET_PATTERNS: tuple[str, ...] = ("nvim.*/*/nvim.*.0", "nvim*/0")
    RUNTIME_SOCKET_PATTERNS: tuple[str, ...] = ("nvim.*/*",)
    DARWIN_SOCKET_PATTERNS: tuple[str, ...] = (
        "/var/folders/*/*/T/nvim.*/*/nvim.*.0",
        "/private/var/folders/*/*/T/nvim.*/*/nvim.*.0",
    )
    LINUX_SOCKET_PATTERNS: tuple[str, ...] = ("/run/user/*/nvim.*/*",)

    # Severity name mapping
    SEVERITY_NAMES: dict[int, str] = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        """Initialize mutable defaults."""
        object.__setattr__(
            self,
            "SEVERITY_NAMES",
            {
                self.SEVERITY_ERROR: "error",
                self.SEVERITY_WARNING: "warning",
                self.SEVERITY_INFO: "info",
                self.SEVERITY_HINT: "hint",
            },
        )


# Default instance for easy import
CONSTANTS = Constants()
