"""
coverwatch - continuous line coverage for running Python services

Counts which lines of a live process execute, turns the counts into deltas,
and merges them into a store shared by every worker process.
"""

__version__ = "0.1.0"

from .classifier import FileClassifier
from .collector import CoverageCollector
from .config import CoverageConfig, load_config
from .merge import MergeEngine
from .models import FileCoverage, MergeMode, TrackingPhase
from .service import CoverageService
from .tracker import DeltaTracker

__all__ = [
    "CoverageService",  # Startup wiring (most hosts only need this)
    "CoverageCollector",
    "CoverageConfig",
    "load_config",
    "FileClassifier",
    "DeltaTracker",
    "MergeEngine",
    "FileCoverage",
    "MergeMode",
    "TrackingPhase",
]
