"""
CLI layer for spotcheck.

Terminal transport only: argument parsing, coloured output and tables.
Everything it shows comes from ``spotcheck.geo``, ``spotcheck.resilience``
and ``spotcheck.core``.

Entry point::

    spotcheck --help
"""

from spotcheck.cli.app import app

__all__ = ["app"]
