import dataclasses
import functools
import os
from datetime import datetime
from typing import Callable, Dict, List, Optional

from loguru import logger

from iogen import measure
from iogen.config import Phases, TestConfig
from iogen.control import RunController
from iogen.errors import EXIT_FILL, EXIT_OK, EXIT_PHASE, FillError
from iogen.executor import BoundedExecutor
from iogen.filler import fill_dir
from iogen.measure import Harness, LogSink, TimingRecord
from iogen.tree import build_tree, check_origin, list_tree, make_workdir, walk_dirs


def load_average() -> str:
    try:
        return " ".join(f"{v:.2f}" for v in os.getloadavg())
    except (AttributeError, OSError):
        return "unavailable"


@dataclasses.dataclass
class RunResult:
    workdir: str
    phases: Phases
    directories: List[str] = dataclasses.field(default_factory=list)
    fill_errors: List[FillError] = dataclasses.field(default_factory=list)
    phase_errors: Dict[str, Exception] = dataclasses.field(default_factory=dict)
    records: List[TimingRecord] = dataclasses.field(default_factory=list)

    @property
    def exit_code(self) -> int:
        if self.fill_errors:
            return EXIT_FILL
        if self.phase_errors:
            return EXIT_PHASE
        return EXIT_OK

    def report(self) -> List[str]:
        """Final listing for the operator; the tree is only gone if it was purged."""
        if self.phases.delete:
            if os.path.lexists(self.workdir):
                return list_tree(self.workdir)
            return []
        return list_tree(self.workdir) + [
            f"Directory '{self.workdir}' created with specified object parameters"
        ]


class Benchmark:
    def __init__(
        self,
        config: TestConfig,
        origin: str,
        phases: Phases = Phases(),
        sink: Optional[LogSink] = None,
        controller: Optional[RunController] = None,
        gen_dir: Optional[str] = None,
    ) -> None:
        self.config = config
        self.origin = origin
        self.phases = phases
        self.gen_dir = gen_dir
        self.controller = controller or RunController()
        self.harness = Harness(sink or LogSink())

    def run(self) -> RunResult:
        """Set up the working directory, then run every requested phase in order.

        Setup failures raise. Fill errors and optional-phase failures are
        collected in the result.
        """
        origin = check_origin(self.origin)
        workdir = make_workdir(origin, self.gen_dir)
        result = RunResult(workdir, self.phases, records=self.harness.records)

        with self.controller.armed():
            build_tree(workdir, self.config.depth, self.config.width)
            self.controller.check()

            logger.info(f"Start time: {datetime.now()}")
            logger.opt(lazy=True).info("Load average: {}", load_average)
            logger.info(f"Parameter: {self.config.describe()}, Target: {workdir}")

            result.directories = walk_dirs(workdir)
            result.fill_errors = self.create(result.directories)
            if result.fill_errors:
                logger.error(f"{len(result.fill_errors)} directories were not completely filled")
            logger.info("All directories are now filled")

            logger.info("Ensuring writes are synced")
            self._phase(result, "sync", measure.SYNC_TIME, functools.partial(measure.sync_tree, workdir))

            if self.phases.count:
                logger.info(f"Counting directory '{workdir}'")
                self._phase(result, "count", measure.COUNT_TIME, functools.partial(self._count, workdir))
            if self.phases.size:
                logger.info(f"Sizing directory '{workdir}'")
                self._phase(result, "size", measure.SUMATION_TIME, functools.partial(self._size, workdir))
            if self.phases.delete:
                logger.info(f"Purging '{workdir}'")
                self._phase(result, "delete", measure.PURGE_TIME, functools.partial(measure.purge_tree, workdir))
        return result

    def create(self, directories: List[str]) -> List[FillError]:
        executor = BoundedExecutor(self.config.parallel, self.controller)
        fill = functools.partial(fill_dir, config=self.config, token=self.controller.token)
        with self.harness.measure(measure.CREATION_TIME):
            return executor.run(directories, fill)

    def _phase(self, result: RunResult, name: str, label: str, fn: Callable[[], Optional[Callable[[], None]]]) -> None:
        self.controller.check()
        try:
            with self.harness.measure(label):
                emit_results = fn()
        except OSError as ex:
            logger.error(f"{name} phase failed: {ex}")
            result.phase_errors[name] = ex
            return
        # magnitudes follow the timing record of their phase
        if emit_results is not None:
            emit_results()

    def _count(self, workdir: str) -> Callable[[], None]:
        counted = measure.count_tree(workdir)

        def emit():
            self.harness.emit(measure.COUNT_RESULT, counted.bytes)
            self.harness.emit(measure.COUNT_FILES, counted.files)

        return emit

    def _size(self, workdir: str) -> Callable[[], None]:
        kib = measure.size_tree(workdir)
        return functools.partial(self.harness.emit, measure.SUMATION_KB, kib)
