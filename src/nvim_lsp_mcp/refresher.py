"""Best-effort refresh of buffers so LSP clients re-publish diagnostics."""

import logging
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from nvim_lsp_mcp.config.constants import CONSTANTS
from nvim_lsp_mcp.config.settings import Settings
from nvim_lsp_mcp.errors import RefreshWarning, RemoteCallError, RequestCancelledError
from nvim_lsp_mcp.nvim_client import RemoteClient
from nvim_lsp_mcp.scripts import (
    DIAGNOSTICS_SNAPSHOT,
    FILTER_SUPPORTED_FILES,
    REFRESH_BUFFERS,
    ScriptProtocolError,
    decode_filter_result,
    decode_snapshot,
    load_script,
)
from nvim_lsp_mcp.utils import is_within_workspace, split_by_workspace, workspace_paths

logger = logging.getLogger("nvim-lsp-mcp.refresh")

GitRunner = Callable[[str], list[str]]


def git_changed_files(workspace: str, timeout: float = CONSTANTS.GIT_TIMEOUT) -> list[str]:
    """List files changed against HEAD (staged and unstaged) below the workspace.

    Paths are relative to ``workspace``; changes elsewhere in the repository
    are left out.

    Raises:
        RefreshWarning: If git is missing, fails or times out.
    """
    try:
        proc = subprocess.run(
            ["git", "diff", "--name-only", "--relative", "HEAD"],
            cwd=workspace,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
    except FileNotFoundError as e:
        raise RefreshWarning(f"cannot run git in {workspace}: {e}") from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        raise RefreshWarning(f"failed to run git diff --name-only: {stderr or e}") from e
    except subprocess.TimeoutExpired as e:
        raise RefreshWarning(f"git diff timed out after {timeout:g}s") from e
    except OSError as e:
        raise RefreshWarning(f"failed to run git diff --name-only: {e}") from e
    return [line for line in proc.stdout.splitlines() if line.strip()]


@dataclass
class RefreshResult:
    """Outcome of a refresh attempt. Never fatal to the request."""

    explicit: bool = False
    requested: list[str] = field(default_factory=list)  # resolved targets
    files: list[str] = field(default_factory=list)  # targets actually reloaded
    outside_workspace: list[str] = field(default_factory=list)
    changed_count: int = 0  # inferred branch only, before filtering
    unsupported_count: int = 0
    capped: bool = False
    skipped: bool = False
    warning: str | None = None


class DiagnosticsRefresher:
    """Reloads target buffers from disk and sends ``didSave`` to their LSP clients."""

    def __init__(
        self,
        settings: Settings,
        cancel_event: threading.Event | None = None,
        git_runner: GitRunner | None = None,
    ):
        self.settings = settings
        self.cancel_event = cancel_event or threading.Event()
        self._git_runner = git_runner or git_changed_files

    def _resolve_explicit(
        self, workspace: str, explicit_files: list[str], result: RefreshResult
    ) -> None:
        inside, outside = split_by_workspace(explicit_files, workspace)
        for path in outside:
            logger.warning(f"nvim: file {path} is outside workspace {workspace}, skipping")
        result.outside_workspace = outside
        result.requested = inside

    def _resolve_inferred(
        self, client: RemoteClient, workspace: str, result: RefreshResult
    ) -> None:
        changed = self._git_runner(workspace)
        result.changed_count = len(changed)
        candidates = workspace_paths(workspace, changed)
        if not candidates:
            logger.info(f"nvim: no changed files to refresh ({len(changed)} reported by git)")
            return

        payload = client.exec_lua(
            load_script(FILTER_SUPPORTED_FILES),
            candidates,
            list(self.settings.ambiguous_extensions),
        )
        filtered = decode_filter_result(payload)
        result.unsupported_count = filtered.unsupported_count
        result.requested = [p for p in filtered.supported if is_within_workspace(p, workspace)]
        logger.info(
            f"nvim: changed files: {len(changed)} from git, {len(candidates)} readable, "
            f"{len(result.requested)} served by LSP, {filtered.unsupported_count} unsupported"
        )

    def refresh(
        self, client: RemoteClient, workspace: str, explicit_files: list[str] | None = None
    ) -> RefreshResult:
        """Resolve target files and trigger a reload/notify inside Neovim.

        Failures are logged and recorded on the result instead of raised,
        since whatever diagnostics Neovim already holds are still usable.

        Args:
            client: Connected client for the validated session.
            workspace: Absolute workspace root.
            explicit_files: Files requested by the caller. When empty, targets
                are inferred from ``git diff`` and filtered to LSP-served
                filetypes.

        Raises:
            RequestCancelledError: Only cancellation escapes.
        """
        result = RefreshResult(explicit=bool(explicit_files))
        try:
            if explicit_files:
                self._resolve_explicit(workspace, explicit_files, result)
                logger.info(f"nvim: refreshing workspace diagnostics for {len(result.requested)} files")
            else:
                logger.info("nvim: refreshing workspace diagnostics for changed files")
                self._resolve_inferred(client, workspace, result)

            if len(result.requested) > self.settings.max_files:
                result.capped = True
                raise RefreshWarning(
                    f"too many files to reload ({len(result.requested)} > "
                    f"{self.settings.max_files}), skipping reload"
                )

            if result.requested:
                client.exec_lua(load_script(REFRESH_BUFFERS), result.requested)
                result.files = list(result.requested)
        except RequestCancelledError:
            raise
        except RefreshWarning as e:
            result.skipped = True
            result.warning = str(e)
            logger.warning(f"nvim: {e}")
        except (RemoteCallError, ScriptProtocolError) as e:
            result.skipped = True
            result.warning = f"failed to refresh workspace diagnostics: {e}"
            logger.warning(f"nvim: {result.warning}")
        return result

    def settle(self, client: RemoteClient, result: RefreshResult) -> None:
        """Wait for LSP clients to re-publish diagnostics after a refresh.

        Neovim offers no completion signal for the scheduled notifications,
        so this is a heuristic. Nothing is awaited when nothing was reloaded.

        Raises:
            RequestCancelledError: If cancelled while waiting.
        """
        if not result.files:
            return
        if self.settings.settle_mode == CONSTANTS.SETTLE_POLL:
            self._settle_poll(client, result.files)
        else:
            logger.info(
                f"nvim: waiting {self.settings.settle_seconds:g}s for LSP to reload diagnostics..."
            )
            self._wait(self.settings.settle_seconds)

    def _wait(self, seconds: float) -> None:
        if seconds > 0 and self.cancel_event.wait(seconds):
            raise RequestCancelledError("cancelled while waiting for diagnostics to settle")

    def _settle_poll(self, client: RemoteClient, files: list[str]) -> None:
        """Poll buffer change markers until they change and then stay quiet.

        Returns early only once a change has been observed and held steady
        for ``settle_quiet_seconds``; otherwise waits the full bound.
        """
        script = load_script(DIAGNOSTICS_SNAPSHOT)
        start = time.monotonic()
        deadline = start + self.settings.settle_seconds
        initial: dict[str, tuple[int, int]] | None = None
        last: dict[str, tuple[int, int]] | None = None
        stable_since = start

        while True:
            try:
                snapshot = decode_snapshot(client.exec_lua(script, files))
            except RequestCancelledError:
                raise
            except (RemoteCallError, ScriptProtocolError) as e:
                logger.warning(f"nvim: diagnostics snapshot failed ({e}), using fixed wait")
                self._wait(deadline - time.monotonic())
                return

            now = time.monotonic()
            if initial is None:
                initial = snapshot
            if snapshot != last:
                last = snapshot
                stable_since = now
            elif snapshot != initial and now - stable_since >= self.settings.settle_quiet_seconds:
                logger.info(f"nvim: diagnostics settled after {now - start:.2f}s")
                return

            if now >= deadline:
                logger.info(f"nvim: settle bound of {self.settings.settle_seconds:g}s reached")
                return
            self._wait(min(CONSTANTS.SETTLE_POLL_INTERVAL, deadline - now))
