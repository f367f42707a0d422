import io
import os

import pytest
from loguru import logger

from iogen import filler, measure
from iogen.bench import Benchmark, load_average
from iogen.config import FixedBlocks, Phases, RandomBlocks, TestConfig
from iogen.errors import EXIT_FILL, EXIT_OK, EXIT_PHASE, OriginError, TempDirError
from iogen.measure import LogSink


def files_under(root):
    found = {}
    for dirpath, _, filenames in os.walk(root):
        for name in filenames:
            path = os.path.join(dirpath, name)
            found[path] = os.path.getsize(path)
    return found


def labels(stream):
    return [line.split(": ")[0] for line in stream.getvalue().splitlines()]


def values(stream):
    return dict(line.split(": ") for line in stream.getvalue().splitlines())


def run(origin, config, phases=Phases(), **kwargs):
    stream = io.StringIO()
    result = Benchmark(config, str(origin), phases, LogSink(stream=stream), **kwargs).run()
    return result, stream


def test_fixed_scenario(tmp_path):
    config = TestConfig(depth=1, width=2, count=1, block_size=1024, blocks=FixedBlocks(1), parallel=1)
    result, stream = run(tmp_path, config)

    assert result.exit_code == EXIT_OK
    assert os.path.dirname(result.workdir) == str(tmp_path)
    assert len(result.directories) == 3
    for directory in result.directories:
        assert sorted(os.listdir(directory))[:2] == ["0-dummy_bs-1Kxblks-1_file", "1-dummy_bs-1Kxblks-1_file"]
    found = files_under(result.workdir)
    assert len(found) == 6
    assert set(found.values()) == {1024}
    assert sum(found.values()) == 6144
    assert labels(stream) == [measure.CREATION_TIME, measure.SYNC_TIME]


def test_random_scenario_count_matches_sizes(tmp_path):
    config = TestConfig(depth=1, width=2, count=1, block_size=1024, blocks=RandomBlocks(1, 4), parallel=1)
    result, stream = run(tmp_path, config, Phases(count=True))

    found = files_under(result.workdir)
    assert len(found) == 6
    assert set(found.values()) <= {1024, 2048, 3072, 4096}
    assert labels(stream) == [
        measure.CREATION_TIME,
        measure.SYNC_TIME,
        measure.COUNT_TIME,
        measure.COUNT_RESULT,
        measure.COUNT_FILES,
    ]
    assert values(stream)[measure.COUNT_RESULT] == str(sum(found.values()))
    assert values(stream)[measure.COUNT_FILES] == "6"


def test_delete_scenario_leaves_no_residue(tmp_path):
    (tmp_path / "existing").write_text("keep")
    before = sorted(os.listdir(tmp_path))
    config = TestConfig(depth=2, width=2, count=2, block_size=64, blocks=FixedBlocks(2), parallel=2)
    result, stream = run(tmp_path, config, Phases(delete=True))

    assert result.exit_code == EXIT_OK
    assert not os.path.exists(result.workdir)
    assert sorted(os.listdir(tmp_path)) == before
    assert (tmp_path / "existing").read_text() == "keep"
    assert labels(stream) == [measure.CREATION_TIME, measure.SYNC_TIME, measure.PURGE_TIME]
    assert result.report() == []


def test_all_phases_in_order(tmp_path):
    config = TestConfig(depth=2, width=1, count=0, block_size=4096, blocks=FixedBlocks(1), parallel=3)
    result, stream = run(tmp_path, config, Phases.all())
    assert labels(stream) == [
        measure.CREATION_TIME,
        measure.SYNC_TIME,
        measure.COUNT_TIME,
        measure.COUNT_RESULT,
        measure.COUNT_FILES,
        measure.SUMATION_TIME,
        measure.SUMATION_KB,
        measure.PURGE_TIME,
    ]
    assert values(stream)[measure.COUNT_RESULT] == str(4 * 4096)
    assert values(stream)[measure.COUNT_FILES] == "4"
    assert [r.label for r in result.records] == labels(stream)


def test_count_is_stable_on_unchanged_tree(tmp_path):
    config = TestConfig(depth=2, width=2, count=3, block_size=16, blocks=RandomBlocks(1, 9), parallel=4)
    result, _ = run(tmp_path, config)
    assert measure.count_tree(result.workdir) == measure.count_tree(result.workdir)


def test_chain_and_width_directories_are_filled(tmp_path):
    config = TestConfig(depth=3, width=2, count=0, block_size=1, blocks=FixedBlocks(1), parallel=2)
    result, _ = run(tmp_path, config)
    assert len(result.directories) == 9
    for directory in result.directories:
        assert any(name.endswith("_file") for name in os.listdir(directory))


def test_tree_is_kept_without_delete(tmp_path):
    config = TestConfig(depth=1, width=1, count=0, block_size=1, blocks=FixedBlocks(1), parallel=1)
    result, _ = run(tmp_path, config)
    report = result.report()
    assert os.path.isdir(result.workdir)
    assert report[0] == result.workdir
    assert report[-1] == f"Directory '{result.workdir}' created with specified object parameters"
    assert len(report) == 1 + 2 + 2 + 1


def test_depth_zero_creates_only_the_workdir(tmp_path):
    result, stream = run(tmp_path, TestConfig(depth=0, width=3, count=3))
    assert result.directories == []
    assert os.listdir(result.workdir) == []
    assert labels(stream) == [measure.CREATION_TIME, measure.SYNC_TIME]


def test_gen_dir(tmp_path):
    result, _ = run(tmp_path, TestConfig(depth=0), gen_dir=".bench")
    assert os.path.dirname(result.workdir) == str(tmp_path / ".bench")


def test_fill_errors_are_collected(tmp_path, monkeypatch):
    real_write = filler.write_blocks

    def flaky(path, data, blocks, token=None):
        if "width1" in path:
            raise OSError(28, "No space left on device")
        return real_write(path, data, blocks, token)

    monkeypatch.setattr(filler, "write_blocks", flaky)
    config = TestConfig(depth=2, width=2, count=1, block_size=8, blocks=FixedBlocks(1), parallel=2)
    result, stream = run(tmp_path, config, Phases(count=True))

    assert result.exit_code == EXIT_FILL
    assert len(result.fill_errors) == 2
    assert all("width1" in e.path for e in result.fill_errors)
    assert labels(stream)[:2] == [measure.CREATION_TIME, measure.SYNC_TIME]
    assert values(stream)[measure.COUNT_RESULT] == str(4 * 2 * 8)
    assert values(stream)[measure.COUNT_FILES] == str(4 * 2)


def test_failed_phase_does_not_stop_later_phases(tmp_path, monkeypatch):
    def broken(root):
        raise PermissionError(13, "Permission denied", root)

    monkeypatch.setattr(measure, "count_tree", broken)
    config = TestConfig(depth=1, width=1, count=0, block_size=1, blocks=FixedBlocks(1), parallel=1)
    result, stream = run(tmp_path, config, Phases.all())

    assert result.exit_code == EXIT_PHASE
    assert set(result.phase_errors) == {"count"}
    assert labels(stream) == [
        measure.CREATION_TIME,
        measure.SYNC_TIME,
        measure.SUMATION_TIME,
        measure.SUMATION_KB,
        measure.PURGE_TIME,
    ]
    assert not os.path.exists(result.workdir)


def test_invalid_origin_has_no_side_effects(tmp_path):
    with pytest.raises(OriginError):
        run(tmp_path / "missing", TestConfig())
    assert os.listdir(tmp_path) == []


def test_tempdir_failure(tmp_path, monkeypatch):
    def fail(**kwargs):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("iogen.tree.tempfile.mkdtemp", fail)
    with pytest.raises(TempDirError):
        run(tmp_path, TestConfig())


def test_missing_load_average_does_not_abort_run(tmp_path, monkeypatch):
    def unavailable():
        raise OSError("Load average is unobtainable")

    monkeypatch.setattr(os, "getloadavg", unavailable)
    logger.add(io.StringIO(), level="INFO")
    result, stream = run(tmp_path, TestConfig(depth=1, width=1, count=0, block_size=1, blocks=FixedBlocks(1)))
    assert result.exit_code == EXIT_OK
    assert labels(stream) == [measure.CREATION_TIME, measure.SYNC_TIME]
    assert load_average() == "unavailable"
