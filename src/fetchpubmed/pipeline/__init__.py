"""
Pipeline orchestration for fetchpubmed.

This package wires fetching, decompression, extraction, serialization and
chunked output into one streaming run, with bounded hand-off between stages.
"""

from .orchestrator import Orchestrator, RunReport
from .stages import BoundedChannel, StageCancelled, run_stage

__all__ = [
    "Orchestrator",
    "RunReport",
    "BoundedChannel",
    "StageCancelled",
    "run_stage",
]
