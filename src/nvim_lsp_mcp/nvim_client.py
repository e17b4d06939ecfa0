"""RPC client for an already-running Neovim session."""

import logging
import queue
import threading
import time
from typing import Any, Callable

import pynvim

from nvim_lsp_mcp.config.constants import CONSTANTS
from nvim_lsp_mcp.errors import (
    NvimLspMcpError,
    RemoteCallError,
    RemoteTimeoutError,
    RequestCancelledError,
)

logger = logging.getLogger("nvim-lsp-mcp.client")

AttachFn = Callable[[str], Any]


def attach_address(address: str) -> pynvim.Nvim:
    """Dial a Neovim listen address.

    ``host:port`` addresses are dialled over TCP; anything else is treated
    as a Unix socket (or Windows named pipe) path.
    """
    host, sep, port = address.rpartition(":")
    if sep and host and port.isdigit() and "/" not in address and "\\" not in address:
        return pynvim.attach("tcp", address=host, port=int(port))
    return pynvim.attach("socket", path=address)


class _PendingCall:
    """A unit of work queued for the RPC worker thread."""

    def __init__(self, fn: Callable[..., Any], args: tuple[Any, ...]):
        self.fn = fn
        self.args = args
        self.done = threading.Event()
        self.result: Any = None
        self.error: BaseException | None = None


class RemoteClient:
    """Synchronous wrapper over one msgpack-RPC connection to Neovim.

    The pynvim session is created and used only on a dedicated daemon thread.
    Callers block until the call completes, the request timeout elapses or
    ``cancel_event`` is set, whichever comes first. An abandoned call keeps
    running on the worker, and ``close()`` stops the session's event loop
    instead of waiting behind it.
    """

    def __init__(
        self,
        address: str,
        request_timeout: float = CONSTANTS.REQUEST_TIMEOUT,
        cancel_event: threading.Event | None = None,
        attach: AttachFn | None = None,
    ):
        self.address = address
        self.request_timeout = request_timeout
        self.cancel_event = cancel_event or threading.Event()
        self._attach = attach or attach_address
        self.nvim: Any = None
        self._dialled: Any = None
        self.running = False
        self._abandoned = False
        self._calls: "queue.Queue[_PendingCall | None]" = queue.Queue()
        self.worker_thread: threading.Thread | None = None

    def __enter__(self) -> "RemoteClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def connect(self) -> "RemoteClient":
        """Start the worker thread and dial the address.

        Raises:
            RemoteCallError: If the address cannot be dialled.
            RequestCancelledError: If cancellation fired first.
        """
        self.running = True
        self.worker_thread = threading.Thread(
            target=self._worker_loop, name=f"nvim-rpc:{self.address}", daemon=True
        )
        self.worker_thread.start()
        try:
            self.nvim = self._submit(self._dial, description="dial")
        except NvimLspMcpError:
            self.close()
            raise
        return self

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        if not self.running:
            return
        self.running = False

        nvim = self.nvim
        if nvim is not None and not self._abandoned:
            call = _PendingCall(nvim.close, ())
            self._calls.put(call)
            if not call.done.wait(CONSTANTS.CLOSE_TIMEOUT):
                logger.warning(f"Timed out closing connection to {self.address}")
            elif call.error is not None:
                logger.warning(f"Error closing connection to {self.address}: {call.error}")
        elif nvim is not None:
            # The worker runs the close once the interrupted call returns
            self._stop_loop(nvim)
            self._calls.put(_PendingCall(nvim.close, ()))
        else:
            # Queued behind an abandoned dial, so it sees that dial's result
            self._calls.put(_PendingCall(self._close_dialled, ()))
        self._calls.put(None)

    def _dial(self) -> Any:
        self._dialled = self._attach(self.address)
        return self._dialled

    def _close_dialled(self) -> None:
        """Close a session whose dial completed after the caller gave up on it."""
        if self._dialled is not None:
            logger.info(f"Closing late connection to {self.address}")
            self._dialled.close()

    def _stop_loop(self, nvim: Any) -> None:
        """Interrupt a call that is still blocked on the worker thread."""
        loop = getattr(nvim, "loop", None)
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(loop.stop)
        except RuntimeError as e:
            logger.debug(f"Event loop for {self.address} already closed: {e}")

    def _worker_loop(self) -> None:
        """Background thread that owns the pynvim session."""
        while True:
            call = self._calls.get()
            if call is None:
                break
            try:
                call.result = call.fn(*call.args)
            except Exception as e:
                call.error = e
            finally:
                call.done.set()

    def _submit(self, fn: Callable[..., Any], *args: Any, description: str) -> Any:
        """Run ``fn`` on the worker thread and wait for its result."""
        if not self.running:
            raise RemoteCallError(f"{description}: connection to {self.address} is closed")
        if self.cancel_event.is_set():
            raise RequestCancelledError(f"{description} cancelled")

        call = _PendingCall(fn, args)
        self._calls.put(call)

        deadline = time.monotonic() + self.request_timeout
        while not call.done.wait(CONSTANTS.CANCEL_POLL_INTERVAL):
            if self.cancel_event.is_set():
                self._abandoned = True
                raise RequestCancelledError(f"{description} cancelled")
            if time.monotonic() >= deadline:
                self._abandoned = True
                raise RemoteTimeoutError(
                    f"{description} timed out after {self.request_timeout:g}s"
                )

        if call.error is not None:
            if isinstance(call.error, NvimLspMcpError):
                raise call.error
            raise RemoteCallError(f"{description} failed: {call.error}") from call.error
        return call.result

    def _session(self) -> Any:
        if self.nvim is None:
            raise RemoteCallError(f"not connected to {self.address}")
        return self.nvim

    def eval(self, expression: str) -> Any:
        """Evaluate a Vimscript expression."""
        nvim = self._session()
        return self._submit(nvim.eval, expression, description=f"eval({expression})")

    def call(self, method: str, *args: Any) -> Any:
        """Issue a raw API request such as ``nvim_list_bufs``."""
        nvim = self._session()
        return self._submit(nvim.request, method, *args, description=method)

    def exec_lua(self, source: str, *args: Any) -> Any:
        """Execute a Lua chunk with positional arguments (``...`` in Lua).

        Returns:
            The chunk's return value, or None if it returns nothing.
        """
        nvim = self._session()
        return self._submit(nvim.exec_lua, source, *args, description="nvim_exec_lua")

    def get_cwd(self) -> str:
        """Return the session's current working directory."""
        cwd = self.eval("getcwd()")
        if not isinstance(cwd, str):
            raise RemoteCallError(f"getcwd() returned {type(cwd).__name__}, expected str")
        return cwd
