"""Top-level package for the PDF Shrinker service.

This package contains:
- an HTTP API (FastAPI) that accepts a PDF, rewrites it and streams it back;
- the transient storage and rewrite services used by that API;
- an upload client (httpx) reporting byte-level progress.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
