from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("iogen")
except PackageNotFoundError:
    __version__ = "debug"
