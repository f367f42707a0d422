import errno
import os
import stat
import tempfile
from typing import List, Optional

from loguru import logger

from iogen.errors import DirectoryCreateError, InvalidConfig, OriginError, TempDirError

WORKDIR_PREFIX = "data_generator."


def check_origin(origin: Optional[str]) -> str:
    """Return the absolute origin path if it is an existing, writable directory."""
    if not origin:
        raise OriginError("Please specify a writable target directory (got '')")
    path = os.path.abspath(origin)
    try:
        st = os.stat(path)
    except OSError as ex:
        raise OriginError(f"Please specify a writable target directory (got '{origin}'): {ex.strerror}")
    if not stat.S_ISDIR(st.st_mode):
        raise OriginError(
            f"Please specify a writable target directory (got '{origin}'): {os.strerror(errno.ENOTDIR)}"
        )
    if not os.access(path, os.W_OK | os.X_OK):
        raise OriginError(
            f"Please specify a writable target directory (got '{origin}'): {os.strerror(errno.EACCES)}"
        )
    return path


def check_gen_dir(gen_dir: str) -> str:
    """``gen_dir`` must name a single directory directly under the origin."""
    seps = [os.sep] + ([os.altsep] if os.altsep else [])
    if gen_dir in (".", "..") or any(sep in gen_dir for sep in seps):
        raise InvalidConfig(f"--gen-dir must be a plain directory name (got '{gen_dir}')")
    return gen_dir


def make_workdir(origin: str, gen_dir: Optional[str] = None) -> str:
    """Mint a unique working directory under ``origin`` (or ``origin/gen_dir``).

    Every run gets its own directory so several generators can share an origin.
    """
    if gen_dir:
        check_gen_dir(gen_dir)
        parent = os.path.join(origin, gen_dir)
        try:
            os.mkdir(parent)
        except FileExistsError:
            pass
        except OSError as ex:
            raise TempDirError(f"Unable to create '{parent}': {ex.strerror}")
        origin = parent

    logger.info(f"Making directory for this run under '{origin}'")
    try:
        return tempfile.mkdtemp(prefix=WORKDIR_PREFIX, dir=origin)
    except OSError as ex:
        raise TempDirError(f"Unable to create a temporary directory under '{origin}': {ex.strerror}")


def build_tree(root: str, depth: int, width: int) -> List[str]:
    """Create the DEPTH x WIDTH structure under ``root``.

    The ``depth{i}`` directories form a single nested chain and every chain
    node gets ``width`` sibling ``width{j}`` directories. Returns the created
    paths in creation order.
    """
    logger.info(f"Creating directory structure {depth} x {width} at {root}")
    created = []
    location = root
    for at_depth in range(depth):
        location = os.path.join(location, f"depth{at_depth}")
        _makedirs(location)
        created.append(location)
        for at_width in range(width):
            path = os.path.join(location, f"width{at_width}")
            _makedirs(path)
            created.append(path)
    logger.info("Directory structure created")
    return created


def _makedirs(path: str) -> None:
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as ex:
        raise DirectoryCreateError(path, ex)


def walk_dirs(root: str) -> List[str]:
    """Depth-first list of every directory below ``root``, ``root`` excluded."""
    dirs = []
    for dirpath, dirnames, _ in os.walk(root, onerror=_raise):
        dirnames.sort()
        dirs.extend(os.path.join(dirpath, d) for d in dirnames)
    return dirs


def list_tree(root: str) -> List[str]:
    """Every path under ``root``, ``root`` first, like ``find -H root``."""
    paths = [root]
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        paths.extend(os.path.join(dirpath, name) for name in dirnames + sorted(filenames))
    return paths


def _raise(ex: OSError) -> None:
    raise DirectoryCreateError(ex.filename or "", ex)
