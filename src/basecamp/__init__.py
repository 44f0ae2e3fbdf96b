from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("basecamp-runtime")
except PackageNotFoundError:
    # Running from a source checkout without pip install
    __version__ = "0.0.0.dev0"

__all__ = ["__version__"]

import logging

# Library package: log records are discarded unless the application (CLI,
# desktop shell, test harness) configures handlers.
logging.getLogger(__name__).addHandler(logging.NullHandler())
