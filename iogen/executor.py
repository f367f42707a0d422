import queue
import threading
from typing import Callable, List, Optional, Sequence

from loguru import logger

from iogen.control import RunController
from iogen.errors import FillError

JOIN_INTERVAL = 0.1


class FillWorker(threading.Thread):
    """Takes directories off the executor queue until it is empty or the run is cancelled."""

    def __init__(self, executor: "BoundedExecutor", index: int) -> None:
        # daemon, so a write hung past the drain window cannot hold the process open
        super().__init__(name=f"iogen-fill-{index}", daemon=True)
        self.executor = executor
        self.current: Optional[str] = None

    def __str__(self):
        return f"FillWorker {self.name} at {self.current}"

    def run(self):
        executor = self.executor
        while not executor.controller.interrupted:
            try:
                directory = executor.pending.get_nowait()
            except queue.Empty:
                return
            self.current = directory
            try:
                executor.fill(directory)
            except FillError as ex:
                logger.error(f"fill failed: {ex}")
                executor.record(ex)
            except Exception as ex:
                logger.exception(f"unexpected failure filling '{directory}'")
                executor.record(ex)
            finally:
                self.current = None


class BoundedExecutor:
    """Runs one fill per directory with at most ``parallel`` fills in flight."""

    def __init__(self, parallel: int, controller: Optional[RunController] = None) -> None:
        assert parallel >= 1, parallel
        self.parallel = parallel
        self.controller = controller or RunController()
        self.pending: "queue.Queue[str]" = queue.Queue()
        self.fill: Callable[[str], object] = None
        self._lock = threading.Lock()
        self._errors: List[FillError] = []
        self._crashes: List[Exception] = []

    def record(self, ex: Exception) -> None:
        with self._lock:
            if isinstance(ex, FillError):
                self._errors.append(ex)
            else:
                self._crashes.append(ex)

    def _abandon(self) -> int:
        abandoned = 0
        while True:
            try:
                self.pending.get_nowait()
            except queue.Empty:
                return abandoned
            abandoned += 1

    def run(self, directories: Sequence[str], fill: Callable[[str], object]) -> List[FillError]:
        """Fill every directory and return the collected ``FillError``s.

        Raises ``InterruptError`` once the controller has been interrupted and
        the in-flight fills have drained.
        """
        self.fill = fill
        self._errors, self._crashes = [], []
        for directory in directories:
            self.pending.put(directory)

        workers = [FillWorker(self, i) for i in range(min(self.parallel, len(directories)))]
        logger.debug(f"starting {len(workers)} workers for {len(directories)} directories")
        for worker in workers:
            worker.start()

        while True:
            alive = [w for w in workers if w.is_alive()]
            if not alive:
                break
            if self.controller.interrupted:
                abandoned = self._abandon()
                logger.warning(f"abandoned {abandoned} unscheduled directories")
                self.controller.drain(lambda: sum(w.is_alive() for w in workers))
                break
            alive[0].join(JOIN_INTERVAL)

        self._abandon()
        self.controller.check()
        if self._crashes:
            raise self._crashes[0]
        return list(self._errors)
