import errno
import os
import random
from typing import List, Optional

from loguru import logger

from iogen.config import DataSource, FixedBlocks, TestConfig
from iogen.control import CancelToken
from iogen.errors import FillError


def file_name(seq: int, count: int, block_label: str, blocks: int) -> str:
    """``{seq}-dummy_bs-{label}xblks-{blocks}_file`` with ``seq`` padded like ``seq -w 0 count``."""
    return f"{seq:0{len(str(count))}d}-dummy_bs-{block_label}xblks-{blocks}_file"


class BlockSource:
    def __init__(self, source: DataSource, block_size: int) -> None:
        self.source = source
        self.block_size = block_size
        self._zero = bytes(block_size) if source is DataSource.ZERO else None

    def block(self) -> bytes:
        if self._zero is not None:
            return self._zero
        return os.urandom(self.block_size)


def write_blocks(path: str, data: BlockSource, blocks: int, token: Optional[CancelToken] = None) -> int:
    """Write ``blocks`` blocks to a new file, one write call per block."""
    written = 0
    with open(path, "wb", buffering=0) as f:
        for _ in range(blocks):
            if token is not None and token.forced:
                break
            view = memoryview(data.block())
            while view:
                n = f.write(view)
                view = view[n:]
                written += n
    return written


def fill_dir(
    directory: str,
    config: TestConfig,
    token: Optional[CancelToken] = None,
    rng: Optional[random.Random] = None,
) -> List[str]:
    """Write files ``0..config.count`` into ``directory``.

    Under a random block policy every file draws its own block count; the
    generator is seeded once per call so concurrent fills do not share a
    sequence.
    """
    if not os.path.isdir(directory):
        raise FillError(directory, FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), directory))

    policy = config.blocks
    if isinstance(policy, FixedBlocks):
        logger.info(f"Filling directory '{directory}' with {config.count} {config.block_label} x {policy.count} files")
    else:
        if rng is None:
            rng = random.Random(os.urandom(16))
        logger.info(
            f"Filling directory '{directory}' with {config.count} "
            f"{config.block_label} x {policy.min} -> {policy.max} files"
        )

    data = BlockSource(config.source, config.block_size)
    created = []
    for seq in range(config.count + 1):
        if token is not None and token.requested:
            logger.debug(f"stopping fill of '{directory}' after {len(created)} files")
            break
        if isinstance(policy, FixedBlocks):
            blocks = policy.count
        else:
            blocks = rng.randint(policy.min, policy.max)
        path = os.path.join(directory, file_name(seq, config.count, config.block_label, blocks))
        try:
            write_blocks(path, data, blocks, token)
        except OSError as ex:
            raise FillError(path, ex)
        created.append(path)
    return created
