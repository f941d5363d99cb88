from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ethereum-metrics-exporter")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = ["cli", "daemon"]
