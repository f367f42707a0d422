import dataclasses
import enum
import re
from typing import Optional, Union

from iogen.errors import InvalidConfig

# Suffixes follow the `bs=` operand of dd(1): single letters are powers of
# 1024, the "xB" forms powers of 1000 and a bare "B" is a 512 byte block.
SIZE_UNITS = {
    "": 1,
    "C": 1,
    "W": 2,
    "B": 512,
    "K": 1024,
    "KIB": 1024,
    "KB": 1000,
    "M": 1024**2,
    "MIB": 1024**2,
    "MB": 1000**2,
    "G": 1024**3,
    "GIB": 1024**3,
    "GB": 1000**3,
    "T": 1024**4,
    "TIB": 1024**4,
    "TB": 1000**4,
    "P": 1024**5,
    "PIB": 1024**5,
    "PB": 1000**5,
}
SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*([A-Za-z]*)\s*$")
LABEL_UNITS = ("P", "T", "G", "M", "K")


def parse_size(value: Union[int, str]) -> int:
    if isinstance(value, bool):
        raise InvalidConfig(f"invalid size {value!r}")
    if isinstance(value, int):
        return value
    match = SIZE_PATTERN.match(str(value))
    if not match:
        raise InvalidConfig(f"invalid size {value!r}")
    number, unit = match.groups()
    multiplier = SIZE_UNITS.get(unit.upper())
    if multiplier is None:
        raise InvalidConfig(f"invalid size unit {unit!r} in {value!r}")
    return int(number) * multiplier


def format_size(size: int) -> str:
    for unit in LABEL_UNITS:
        multiplier = SIZE_UNITS[unit]
        if size >= multiplier and size % multiplier == 0:
            return f"{size // multiplier}{unit}"
    return str(size)


def _check_int(name: str, value, minimum: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidConfig(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise InvalidConfig(f"{name} must be >= {minimum}, got {value}")


class DataSource(enum.Enum):
    ZERO = "zero"
    URANDOM = "urandom"


@dataclasses.dataclass(frozen=True)
class FixedBlocks:
    count: int

    def __post_init__(self):
        _check_int("block count", self.count, 0)

    def describe(self) -> str:
        return str(self.count)


@dataclasses.dataclass(frozen=True)
class RandomBlocks:
    min: int
    max: int

    def __post_init__(self):
        _check_int("minimum block count", self.min, 1)
        _check_int("maximum block count", self.max, 1)
        if self.min > self.max:
            raise InvalidConfig(f"block count range {self.min}-{self.max} is empty")

    def describe(self) -> str:
        return f"{self.min}-{self.max}"


BlockPolicy = Union[FixedBlocks, RandomBlocks]


@dataclasses.dataclass(frozen=True)
class TestConfig:
    """Shape of the generated tree and of every file written into it.

    Each directory receives files numbered ``0..count`` inclusive, so
    ``count + 1`` files.
    """

    __test__ = False

    depth: int = 5
    width: int = 5
    count: int = 25
    block_size: Union[int, str] = 1024
    blocks: BlockPolicy = FixedBlocks(1024)
    parallel: int = 8
    source: DataSource = DataSource.ZERO

    def __post_init__(self):
        _check_int("depth", self.depth, 0)
        _check_int("width", self.width, 0)
        _check_int("count", self.count, 0)
        _check_int("parallel", self.parallel, 1)
        object.__setattr__(self, "block_size", parse_size(self.block_size))
        _check_int("block size", self.block_size, 1)
        if not isinstance(self.blocks, (FixedBlocks, RandomBlocks)):
            raise InvalidConfig(f"invalid block count policy {self.blocks!r}")
        if not isinstance(self.source, DataSource):
            try:
                object.__setattr__(self, "source", DataSource(self.source))
            except ValueError:
                raise InvalidConfig(f"invalid data source {self.source!r}") from None

    def replace(self, **changes) -> "TestConfig":
        return dataclasses.replace(self, **changes)

    @property
    def block_label(self) -> str:
        return format_size(self.block_size)

    @property
    def files_per_dir(self) -> int:
        return self.count + 1

    @property
    def num_dirs(self) -> int:
        return self.depth * (1 + self.width)

    def estimated_bytes(self) -> int:
        if isinstance(self.blocks, FixedBlocks):
            blocks = self.blocks.count
        else:
            blocks = (self.blocks.min + self.blocks.max) / 2
        return int(self.num_dirs * self.files_per_dir * self.block_size * blocks)

    def describe(self) -> str:
        return (
            f"Depth: {self.depth}, Width: {self.width}, Objects per: {self.count}, "
            f"Block_size: {self.block_label}, Blocks: {self.blocks.describe()}, "
            f"Parallel: {self.parallel}, Source: {self.source.value}"
        )


@dataclasses.dataclass(frozen=True)
class Phases:
    count: bool = False
    size: bool = False
    delete: bool = False

    @classmethod
    def all(cls) -> "Phases":
        return cls(count=True, size=True, delete=True)

    def __or__(self, other: "Phases") -> "Phases":
        return Phases(
            count=self.count or other.count,
            size=self.size or other.size,
            delete=self.delete or other.delete,
        )


@dataclasses.dataclass(frozen=True)
class Preset:
    name: str
    config: TestConfig
    phases: Phases = Phases()
    gen_dir: Optional[str] = None

    def __post_init__(self):
        assert self.name and " " not in self.name, f"invalid preset name {self.name}"


MAINT_GEN_DIR = ".iogen_maint_benchmark"

PRESETS = {
    p.name: p
    for p in [
        Preset("tiny", TestConfig(5, 5, 10, "1K", FixedBlocks(1024), 8)),
        Preset("small", TestConfig(10, 10, 100, "1K", FixedBlocks(1024), 8)),
        Preset("medium", TestConfig(10, 10, 100, "1M", RandomBlocks(1, 100), 8)),
        Preset("large", TestConfig(10, 10, 25, "1M", RandomBlocks(1, 1000), 8)),
        Preset("huge", TestConfig(10, 10, 100, "1M", RandomBlocks(1, 1000), 8)),
        Preset("ultra", TestConfig(10, 10, 200, "1M", RandomBlocks(1, 1000), 8)),
        Preset("mega-ultra", TestConfig(10, 10, 1000, "1M", RandomBlocks(1, 1000), 8)),
        Preset("tiny-writes", TestConfig(10, 11, 250, 1, RandomBlocks(1, 256), 8)),
        Preset("wide-range", TestConfig(10, 10, 100, "1K", RandomBlocks(1, 1000000), 8)),
        Preset("ultra-wide-range", TestConfig(10, 10, 200, "1K", RandomBlocks(1, 1000000), 8)),
        Preset(
            "maint",
            TestConfig(10, 10, 25, "1M", RandomBlocks(1, 1000), 8),
            phases=Phases.all(),
            gen_dir=MAINT_GEN_DIR,
        ),
    ]
}
