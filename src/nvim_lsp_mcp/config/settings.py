"""Runtime settings for the Neovim LSP MCP server."""

import os
import sys
import tempfile
from dataclasses import dataclass, field

from nvim_lsp_mcp.config.constants import CONSTANTS


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "")
    return int(value) if value.strip() else default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name, "")
    return float(value) if value.strip() else default


@dataclass
class Settings:
    """Runtime settings configured from CLI and environment.

    Every value the pipeline depends on lives here and is handed to the
    components at construction, so nothing reads the environment mid-request.
    """

    address: str | None = field(
        default_factory=lambda: os.environ.get(CONSTANTS.ENV_ADDRESS) or None
    )
    log_file: str | None = field(
        default_factory=lambda: os.environ.get(CONSTANTS.ENV_LOG_FILE) or None
    )
    max_files: int = field(
        default_factory=lambda: _env_int(CONSTANTS.ENV_MAX_FILES, CONSTANTS.MAX_FILES_TO_RELOAD)
    )
    output_mode: str = field(
        default_factory=lambda: os.environ.get(CONSTANTS.ENV_OUTPUT_MODE, CONSTANTS.OUTPUT_TEXT)
    )
    settle_mode: str = field(
        default_factory=lambda: os.environ.get(CONSTANTS.ENV_SETTLE_MODE, CONSTANTS.SETTLE_FIXED)
    )
    settle_seconds: float = field(
        default_factory=lambda: _env_float(CONSTANTS.ENV_SETTLE_SECONDS, CONSTANTS.SETTLE_SECONDS)
    )
    settle_quiet_seconds: float = CONSTANTS.SETTLE_QUIET_SECONDS
    request_timeout: float = field(
        default_factory=lambda: _env_float(CONSTANTS.ENV_TIMEOUT, CONSTANTS.REQUEST_TIMEOUT)
    )
    ambiguous_extensions: tuple[str, ...] = CONSTANTS.AMBIGUOUS_EXTENSIONS
    tmp_dir: str = field(
        default_factory=lambda: os.environ.get(CONSTANTS.ENV_TMPDIR) or tempfile.gettempdir()
    )
    search_roots: tuple[str, ...] = CONSTANTS.SOCKET_SEARCH_ROOTS
    runtime_dir: str | None = field(
        default_factory=lambda: os.environ.get(CONSTANTS.ENV_RUNTIME_DIR) or None
    )
    platform: str = field(default_factory=lambda: sys.platform)

    def __post_init__(self) -> None:
        """Validate and normalize settings."""
        self.output_mode = self.output_mode.lower()
        self.settle_mode = self.settle_mode.lower()
        if self.output_mode not in CONSTANTS.OUTPUT_MODES:
            raise ValueError(
                f"output_mode must be one of {CONSTANTS.OUTPUT_MODES}, got {self.output_mode!r}"
            )
        if self.settle_mode not in CONSTANTS.SETTLE_MODES:
            raise ValueError(
                f"settle_mode must be one of {CONSTANTS.SETTLE_MODES}, got {self.settle_mode!r}"
            )
        if self.max_files < 0:
            raise ValueError(f"max_files must not be negative, got {self.max_files}")
        if self.settle_seconds < 0:
            raise ValueError(f"settle_seconds must not be negative, got {self.settle_seconds}")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")
