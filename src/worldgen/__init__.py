# src/worldgen/__init__.py
try:
    from .worldgen_version import __version__
except ImportError:
    try:
        from importlib.metadata import version, PackageNotFoundError
        __version__ = version("rhessys-worldgen")
    except (ImportError, PackageNotFoundError):
        __version__ = "0.0.0"

from .exceptions import WorldGenError
from .generator import WorldfileGenerator, WorldGenResult

__all__ = ["WorldfileGenerator", "WorldGenResult", "WorldGenError", "__version__"]
