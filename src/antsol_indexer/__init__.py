"""AntSol Indexer: a resumable ledger scanner for the AntSol package registry.

The indexer walks a Solana-style ledger slot by slot, recognises registry
activity (packages published, updated, downloaded) inside free-text program
logs, and materialises it into a SQLite store served by a read-only API.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
``api/server.py`` and ``api/routes/health.py`` import ``__version__`` from here.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ---------------------------------------------------------------------------
# Package version, read from pyproject.toml via importlib.metadata.
#
# Source checkouts that were never installed fall back to the last release.
# ---------------------------------------------------------------------------
try:
    __version__: str = version("antsol-indexer")
except PackageNotFoundError:
    __version__ = "0.2.0"
