"""Discovery of the Neovim session that owns a workspace."""

import glob
import logging
import os
import threading
from typing import Callable

from nvim_lsp_mcp.config.constants import CONSTANTS
from nvim_lsp_mcp.config.settings import Settings
from nvim_lsp_mcp.errors import (
    RemoteCallError,
    RequestCancelledError,
    SessionNotFoundError,
    SessionValidationError,
)
from nvim_lsp_mcp.nvim_client import AttachFn, RemoteClient

logger = logging.getLogger("nvim-lsp-mcp.discovery")

ClientFactory = Callable[[str], RemoteClient]


def _glob_sorted(pattern: str) -> list[str]:
    return sorted(glob.glob(pattern))


def discover_socket_candidates(
    address: str | None,
    tmp_dir: str | None,
    runtime_dir: str | None,
    platform: str,
    search_roots: tuple[str, ...] = CONSTANTS.SOCKET_SEARCH_ROOTS,
) -> list[str]:
    """Return candidate Neovim listen addresses in the order they should be tried.

    Args:
        address: Explicit override address, tried first when set.
        tmp_dir: Temp directory to scan (``$TMPDIR`` or the system default).
        runtime_dir: ``$XDG_RUNTIME_DIR``, if any.
        platform: ``sys.platform`` value selecting the OS-specific scans.
        search_roots: Further temp roots scanned after ``tmp_dir``.

    Returns:
        De-duplicated list of addresses, override first.
    """
    candidates: list[str] = []
    if address:
        candidates.append(address)

    roots = [root for root in (tmp_dir, *search_roots) if root]
    for root in roots:
        for pattern in CONSTANTS.TMP_SOCKET_PATTERNS:
            candidates.extend(_glob_sorted(os.path.join(root, pattern)))

    if runtime_dir:
        for pattern in CONSTANTS.RUNTIME_SOCKET_PATTERNS:
            candidates.extend(_glob_sorted(os.path.join(runtime_dir, pattern)))

    if platform == "darwin":
        os_patterns = CONSTANTS.DARWIN_SOCKET_PATTERNS
    elif platform.startswith("linux"):
        os_patterns = CONSTANTS.LINUX_SOCKET_PATTERNS
    else:
        os_patterns = ()
    for pattern in os_patterns:
        candidates.extend(_glob_sorted(pattern))

    unique = list(dict.fromkeys(candidates))
    if not unique:
        logger.warning(
            f"nvim discovery: no socket candidates found "
            f"(tmp_dir={tmp_dir}, runtime_dir={runtime_dir})"
        )
    return unique


class SessionLocator:
    """Finds and validates the Neovim session whose cwd is the workspace."""

    def __init__(
        self,
        settings: Settings,
        cancel_event: threading.Event | None = None,
        client_factory: ClientFactory | None = None,
        attach: AttachFn | None = None,
    ):
        self.settings = settings
        self.cancel_event = cancel_event or threading.Event()
        self._client_factory = client_factory or self._default_client_factory
        self._attach = attach

    def _default_client_factory(self, address: str) -> RemoteClient:
        return RemoteClient(
            address,
            request_timeout=self.settings.request_timeout,
            cancel_event=self.cancel_event,
            attach=self._attach,
        )

    def candidates(self) -> list[str]:
        """Candidate addresses built from the configured search roots."""
        return discover_socket_candidates(
            self.settings.address,
            self.settings.tmp_dir,
            self.settings.runtime_dir,
            self.settings.platform,
            self.settings.search_roots,
        )

    def _dial(self, address: str) -> RemoteClient | None:
        """Connect to an address, returning None if the dial fails."""
        if self.cancel_event.is_set():
            raise RequestCancelledError("session discovery cancelled")
        client = self._client_factory(address)
        try:
            return client.connect()
        except RequestCancelledError:
            raise
        except RemoteCallError as e:
            logger.warning(f"nvim discovery: dial failed for {address}: {e}")
            return None

    def _query_cwd(self, client: RemoteClient) -> str | None:
        """Read the session cwd, closing the client if the query fails."""
        try:
            return client.get_cwd()
        except RequestCancelledError:
            client.close()
            raise
        except RemoteCallError as e:
            logger.warning(f"nvim discovery: failed to getcwd for {client.address}: {e}")
            client.close()
            return None

    def locate(self, workspace: str) -> RemoteClient:
        """Return a connected client for the session owning ``workspace``.

        The caller owns the returned client and must close it. Every other
        connection opened here is closed before returning.

        Raises:
            SessionValidationError: The override session runs in another cwd.
            SessionNotFoundError: No discovered session matches.
            RequestCancelledError: Cancellation fired during discovery.
        """
        tried: set[str] = set()

        override = self.settings.address
        if override:
            tried.add(override)
            logger.info(f"nvim: connecting to override address {override}")
            client = self._dial(override)
            if client is not None:
                cwd = self._query_cwd(client)
                if cwd is not None:
                    if cwd != workspace:
                        client.close()
                        raise SessionValidationError(workspace, cwd)
                    logger.info(f"nvim: override session matches workspace {workspace}")
                    return client
            logger.warning(f"nvim: override {override} unusable, falling back to discovery")

        candidates = [addr for addr in self.candidates() if addr not in tried]
        for address in candidates:
            logger.info(f"nvim discovery: trying {address}")
            client = self._dial(address)
            if client is None:
                continue
            cwd = self._query_cwd(client)
            if cwd is None:
                continue
            if cwd == workspace:
                logger.info(f"nvim discovery: matched workspace cwd={cwd} at {address}")
                return client
            logger.info(f"nvim discovery: {address} has cwd={cwd}, skipping")
            client.close()

        raise SessionNotFoundError(
            f"no matching session: no Neovim session with cwd {workspace} "
            f"({len(candidates) + len(tried)} candidate(s) tried)"
        )
