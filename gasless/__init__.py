"""Gasless cross-chain bridging flows built on the Relay API."""

from importlib import metadata


def __getattr__(name: str) -> str:
    """Expose the package version via ``gasless.__version__``."""
    if name == "__version__":
        try:
            return metadata.version("gasless-relay")
        except metadata.PackageNotFoundError:
            return "0.0.0"
    raise AttributeError(name)


__all__ = ["__version__"]
