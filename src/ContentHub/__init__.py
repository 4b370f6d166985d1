"""
ContentHub: ingest, serve and reconcile interactive content packages.

Uploaded packages are validated, extracted under a slug-named directory,
recorded in a SQLite catalog, and periodically reconciled against the
filesystem so orphaned directories and uploads can be found and removed.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
