"""Progression Server: character progression history ledger.

Tracks every mutation of a role-playing character (attributes, skills, combat
ratings, point pools) in an append-only chain of size-bounded history blocks,
and supports reverting the most recent entry.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``;
``api/server.py`` and ``api/routes/health.py`` import ``__version__`` from here.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ---------------------------------------------------------------------------
# Package version, read from pyproject.toml via importlib.metadata.
#
# If the package is imported without being installed we fall back to the
# last released version so the application can still start.
# ---------------------------------------------------------------------------
try:
    __version__: str = version("progression_server")
except PackageNotFoundError:
    __version__ = "0.1.0"
