"""
fetchpubmed: stream PubMed baseline archives into chunked TSV files.

Subpackages
-----------
- data:        fetching, decompression, record extraction and output
- pipeline:    orchestrated end-to-end runs
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version(__name__)
except PackageNotFoundError:  # local editable install
    __version__ = "0.0.0-dev"

__all__ = [
    "data",
    "pipeline",
]

from . import data, pipeline
