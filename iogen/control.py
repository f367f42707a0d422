import contextlib
import enum
import signal
import threading
import time
from typing import Callable, Optional

from loguru import logger

from iogen.errors import InterruptError

GRACE_PERIOD = 5
POLL_INTERVAL = 1.0
SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGQUIT") if hasattr(signal, name)
)


class CancelToken:
    """Two-phase cancellation shared by the controller and every worker.

    ``requested`` asks workers to stop before their next file, ``forced``
    before their next block.
    """

    def __init__(self) -> None:
        self._requested = threading.Event()
        self._forced = threading.Event()

    @property
    def requested(self) -> bool:
        return self._requested.is_set()

    @property
    def forced(self) -> bool:
        return self._forced.is_set()

    def request(self) -> None:
        self._requested.set()

    def force(self) -> None:
        self._requested.set()
        self._forced.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._requested.wait(timeout)


class State(enum.Enum):
    RUNNING = "running"
    INTERRUPTED = "interrupted"
    DRAINING = "draining"
    TERMINATED = "terminated"


class RunController:
    def __init__(self, grace: int = GRACE_PERIOD, poll: float = POLL_INTERVAL) -> None:
        assert grace >= 0 and poll > 0, (grace, poll)
        self.grace = grace
        self.poll = poll
        self.token = CancelToken()
        self.state = State.RUNNING
        self.signum: Optional[int] = None

    @contextlib.contextmanager
    def armed(self):
        """Install the interrupt handlers for the duration of the block.

        Handlers can only be installed from the main thread; elsewhere the run
        goes on without them.
        """
        if threading.current_thread() is not threading.main_thread():
            yield self
            return
        previous = {signum: signal.signal(signum, self._on_interrupt) for signum in SIGNALS}
        try:
            yield self
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

    def _on_interrupt(self, signum, frame) -> None:
        self.interrupt(signum)

    def _on_second_interrupt(self, signum, frame) -> None:
        logger.warning(f"received {signal.Signals(signum).name} again, exiting now")
        self.token.force()
        self.state = State.TERMINATED
        raise InterruptError(f"forced exit on {signal.Signals(signum).name}")

    def interrupt(self, signum: Optional[int] = None) -> None:
        if self.state is not State.RUNNING:
            return
        self.signum = signum
        self.state = State.INTERRUPTED
        if signum is not None and threading.current_thread() is threading.main_thread():
            for s in SIGNALS:
                signal.signal(s, self._on_second_interrupt)
            logger.warning(f"received {signal.Signals(signum).name}, stopping workers")
        self.token.request()

    @property
    def interrupted(self) -> bool:
        return self.token.requested

    def drain(self, alive: Callable[[], int]) -> int:
        """Wait up to the grace period for ``alive()`` to reach zero.

        Returns how many workers were still alive when the wait ended; those
        are force-cancelled.
        """
        self.state = State.DRAINING
        remaining = self.grace
        logger.warning(f"Waiting up to {remaining}s for workers to stop...")
        left = alive()
        while left and remaining > 0:
            time.sleep(self.poll)
            remaining -= 1
            left = alive()
            logger.warning(f"{remaining}s ...")
        if left:
            logger.warning(f"{left} worker(s) still running, forcing them to stop")
            self.token.force()
        self.state = State.TERMINATED
        return left

    def check(self) -> None:
        if self.interrupted:
            self.state = State.TERMINATED
            raise InterruptError(self.reason())

    def reason(self) -> str:
        if self.signum is None:
            return "run cancelled"
        return f"run interrupted by {signal.Signals(self.signum).name}"
