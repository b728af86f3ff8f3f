"""
Process Lifecycle Module

Owns the single store handle of a process. The handle is opened once, handed
out for the lifetime of the process, and released exactly once: on normal
interpreter exit, on SIGINT or SIGTERM, or on web application shutdown,
whichever comes first.
"""

import atexit
import signal
import threading
from typing import Callable, Dict, Optional

from .storage import StorageInterface, open_storage
from .logging_config import get_logger


logger = get_logger("securebank.lifecycle")


class StorageHandle:
    """Process-wide owner of one storage connection"""

    def __init__(self, database_url: Optional[str] = None,
                 factory: Callable[[str], StorageInterface] = open_storage,
                 storage: Optional[StorageInterface] = None):
        self.database_url = database_url
        self._factory = factory
        self._storage = storage
        self._lock = threading.Lock()
        self._released = False
        self._atexit_registered = False
        self._previous_handlers: Dict[int, object] = {}

    @property
    def is_open(self) -> bool:
        return self._storage is not None and not self._released

    def acquire(self) -> StorageInterface:
        """Open the store on first call; return the same instance afterwards"""
        with self._lock:
            if self._released:
                raise RuntimeError("Storage handle has already been released")
            if self._storage is None:
                if self.database_url is None:
                    raise RuntimeError("No database_url configured for storage handle")
                self._storage = self._factory(self.database_url)
                logger.info(f"Storage acquired for {self.database_url}")
            if not self._atexit_registered:
                atexit.register(self.release)
                self._atexit_registered = True
            return self._storage

    def release(self) -> bool:
        """
        Close the store if it is still open.

        Returns:
            True when this call closed the store, False if it was already released
        """
        with self._lock:
            if self._released:
                return False
            self._released = True
            storage, self._storage = self._storage, None

        if self._atexit_registered:
            atexit.unregister(self.release)
            self._atexit_registered = False
        self.restore_signal_handlers()

        if storage is not None:
            storage.close()
            logger.info("Storage released")
        return True

    def install_signal_handlers(self, signals=(signal.SIGINT, signal.SIGTERM)) -> None:
        """
        Release the store on termination signals, then defer to whatever
        handler was installed before.

        Only effective from the main thread; elsewhere it is a no-op.
        """
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Signal handlers not installed outside the main thread")
            return

        for signum in signals:
            if signum in self._previous_handlers:
                continue
            self._previous_handlers[signum] = signal.getsignal(signum)
            signal.signal(signum, self._handle_signal)

    def restore_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for signum, previous in list(self._previous_handlers.items()):
            signal.signal(signum, previous)
            del self._previous_handlers[signum]

    def _handle_signal(self, signum, frame) -> None:
        previous = self._previous_handlers.get(signum)
        logger.warning(f"Received signal {signal.Signals(signum).name}, releasing storage")
        self.release()

        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_DFL:
            if signum == signal.SIGINT:
                raise KeyboardInterrupt
            raise SystemExit(128 + signum)
