"""
Exit-time cleanup that also runs on termination signals.
"""
import atexit
import signal
import sys
import threading
from typing import Callable, Dict, List, Optional

from .logger import Logger

_HANDLED_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)
)


class ExitHooks:
    """Callbacks guaranteed to run once when the process ends.

    Register first, then acquire the resource. ``run()`` is triggered by
    normal interpreter exit, by SIGTERM/SIGHUP, or explicitly.
    """

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger
        self._callbacks: List[Callable[[], None]] = []
        self._done: List[Callable[[], None]] = []
        self._previous: Dict[int, object] = {}
        self._installed = False

    def register(self, callback: Callable[[], None]) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def install(self) -> None:
        if self._installed:
            return
        atexit.register(self.run)
        if threading.current_thread() is threading.main_thread():
            for signum in _HANDLED_SIGNALS:
                self._previous[signum] = signal.signal(signum, self._handle_signal)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        atexit.unregister(self.run)
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()
        self._installed = False

    def run(self) -> None:
        """Invoke every pending callback, most recently registered first."""
        for callback in reversed(list(self._callbacks)):
            if callback in self._done:
                continue
            self._done.append(callback)
            try:
                callback()
            except Exception as e:
                if self.logger:
                    self.logger.error(f"Cleanup step failed: {e}")

    def _handle_signal(self, signum, frame) -> None:
        if self.logger:
            self.logger.warning(f"Received signal {signum}, cleaning up...")
        self.run()
        sys.exit(128 + signum)
