import os
import socket
import sys
from typing import Optional, Tuple

import click
from loguru import logger

from iogen.bench import Benchmark
from iogen.config import PRESETS, FixedBlocks, Phases, RandomBlocks, TestConfig, parse_size
from iogen.errors import InterruptError, InvalidConfig, IogenError
from iogen.measure import LogSink

LOG_PATH = os.environ.get("IOGEN_LOG", None)
BLOCKS_META = "iogen.blocks"


def abort(msg, code=1):
    click.echo(click.style(msg, fg="red"), err=True)
    sys.exit(code)


def setup_logging(verbose: bool, debug: bool) -> None:
    level = "DEBUG" if debug else "INFO" if verbose else "WARNING"
    logger.remove()
    logger.add(sys.stderr, level=level, format="{time:HH:mm:ss} {level}: {message}")


def resolve_log_path(path: Optional[str]) -> Optional[str]:
    """A directory gets a per-job log file inside it."""
    if not path or not os.path.isdir(path):
        return path
    job_id = os.environ.get("SLURM_JOBID", "")
    if job_id:
        hostname = os.environ.get("HOSTNAME") or socket.gethostname()
        return os.path.join(path, f"{job_id}-{hostname}.log")
    return os.path.join(path, f"data-gen-{os.getpid()}.log")


class SizeType(click.ParamType):
    name = "size"

    def get_metavar(self, param, *args) -> str:
        return "BLOCK_SIZE[KMGTP]"

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            return value
        try:
            return parse_size(value)
        except InvalidConfig as ex:
            self.fail(str(ex), param, ctx)


class PresetType(click.ParamType):
    name = "preset"

    def get_metavar(self, param, *args) -> str:
        return "[" + "|".join(PRESETS.keys()) + "]"

    def convert(self, value, param, ctx):
        norm_value = value.lstrip("-")
        if norm_value.endswith("-test"):
            norm_value = norm_value[: -len("-test")]
        if norm_value not in PRESETS:
            self.fail(f"{value} is invalid, valid options are {self.get_metavar(param)}", param, ctx)
        return PRESETS[norm_value]


def _fixed_blocks(ctx, param, value):
    if value is not None:
        ctx.meta[BLOCKS_META] = ("fixed", value)
    return value


def _random_blocks(ctx, param, value):
    if value is not None:
        ctx.meta[BLOCKS_META] = ("random", value)
    return value


def _build_config(ctx, preset, overrides) -> TestConfig:
    config = preset.config if preset else TestConfig()
    changes = {k: v for k, v in overrides.items() if v is not None}
    kind, value = ctx.meta.get(BLOCKS_META, (None, None))
    if kind == "fixed":
        changes["blocks"] = FixedBlocks(value)
    elif kind == "random":
        changes["blocks"] = RandomBlocks(*value)
    return config.replace(**changes)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def cli():
    """
    Basic user-space data creation tool / I/O tester
    """


@cli.command(no_args_is_help=True)
@click.argument("target", required=False, type=click.Path())
@click.option("--target", "target_opt", type=click.Path(), help="Directory to generate data under")
@click.option("--preset", type=PresetType(), help="Predefined test; later data modifiers override its values")
@click.option("-d", "--depth", type=int, help="Make the directory structure DEPTH deep")
@click.option("-w", "--width", type=int, help="Make each layer of the directory structure WIDTH wide")
@click.option("-c", "--count", type=int, help="Fill each directory with files numbered 0..COUNT")
@click.option("-bs", "--block-size", type=SizeType(), help="Write in blocks of BLOCK_SIZE (see 'man dd: bs=')")
@click.option(
    "-bc", "--block-count", type=int, callback=_fixed_blocks, help="Write BLOCK_COUNT blocks to each file (overrides -br)"
)
@click.option(
    "-br",
    "--block-count-random",
    type=(int, int),
    default=None,
    callback=_random_blocks,
    metavar="BLOCK_MIN BLOCK_MAX",
    help="Write between BLOCK_MIN and BLOCK_MAX blocks to each file (overrides -bc)",
)
@click.option("--zero", "source", flag_value="zero", help="Fill files with zeros (default)")
@click.option("--urandom", "source", flag_value="urandom", help="Fill files with random bytes")
@click.option("-p", "--parallel", type=int, help="Fill this many directories at a time")
@click.option("--path-test", is_flag=True, default=False, help="Count the generated objects")
@click.option("--size-test", is_flag=True, default=False, help="Size the generated objects")
@click.option("--delete-test", is_flag=True, default=False, help="Remove (and time) the generated tree")
@click.option("--all-tests", "--benchmark", is_flag=True, default=False, help="Alias for --path-test --size-test --delete-test")
@click.option("--gen-dir", help="Create the run directory inside TARGET/GEN_DIR")
@click.option("--log", "log_path", default=LOG_PATH, help="Append test results to LOG (a directory gets a per-job file)")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Report steps and progress")
@click.option("--debug", is_flag=True, default=False, help="Turn on debug dialogue")
@click.pass_context
def run(
    ctx,
    target: Optional[str],
    target_opt: Optional[str],
    preset,
    depth: Optional[int],
    width: Optional[int],
    count: Optional[int],
    block_size: Optional[int],
    block_count: Optional[int],
    block_count_random: Optional[Tuple[int, int]],
    source: Optional[str],
    parallel: Optional[int],
    path_test: bool,
    size_test: bool,
    delete_test: bool,
    all_tests: bool,
    gen_dir: Optional[str],
    log_path: Optional[str],
    verbose: bool,
    debug: bool,
):
    """
    Create a DEPTH x WIDTH tree under a fresh directory in TARGET, fill every
    directory in parallel, and report how long creation and sync took.

    \b
    Results are 'Label: elapsed,user,system' lines:
    CreationTime, SyncTime, CountTime/CountResult/CountFiles,
    SumationTime/SumationKB, PurgeTime.
    The generated tree is only removed with --delete-test.
    """
    setup_logging(verbose, debug)

    try:
        config = _build_config(
            ctx,
            preset,
            dict(depth=depth, width=width, count=count, block_size=block_size, parallel=parallel, source=source or None),
        )
    except InvalidConfig as ex:
        abort(f"Error: {ex}", ex.exit_code)

    phases = Phases(count=path_test, size=size_test, delete=delete_test)
    if all_tests:
        phases = Phases.all()
    if preset:
        phases = phases | preset.phases
        gen_dir = gen_dir or preset.gen_dir

    sink = LogSink(resolve_log_path(log_path))
    logger.debug(f"Log file set to '{sink.path}'")
    try:
        with sink:
            result = Benchmark(config, target_opt or target, phases, sink, gen_dir=gen_dir).run()
    except InterruptError as ex:
        click.echo(click.style(f"Warning: {ex}", fg="yellow"), err=True)
        sys.exit(ex.exit_code)
    except IogenError as ex:
        abort(f"Error: {ex}", ex.exit_code)

    for line in result.report():
        click.echo(line)
    for ex in result.fill_errors:
        click.echo(click.style(f"Error: {ex}", fg="red"), err=True)
    sys.exit(result.exit_code)


def human_size(size: int) -> str:
    for unit, multiplier in (("T", 1024**4), ("G", 1024**3), ("M", 1024**2), ("K", 1024)):
        if size >= multiplier:
            return f"{size / multiplier:.1f}{unit}"
    return f"{size}B"


@cli.command()
def presets():
    """
    List the predefined tests
    """
    click.echo(f"{'':18} {'-d':>3} {'-w':>3} {'-c':>5} {'-bs':>4} {'-bc/-br':>10} {'-p':>3} {'Objects':>8} {'Space':>8}")
    for preset in PRESETS.values():
        config = preset.config
        objects = config.num_dirs * config.files_per_dir
        line = (
            f"{preset.name:18} {config.depth:>3} {config.width:>3} {config.count:>5} "
            f"{config.block_label:>4} {config.blocks.describe():>10} {config.parallel:>3} "
            f"{objects:>8} {'~' + human_size(config.estimated_bytes()):>8}"
        )
        if preset.phases == Phases.all():
            line += "  (all tests)"
        click.echo(line)


if __name__ == "__main__":
    cli()
