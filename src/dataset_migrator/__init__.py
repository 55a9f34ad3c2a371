"""
Dataset Migration Tool

Migrates datasets between GitHub, Kaggle and Hugging Face, tracking every
migration as a job with observable steps, optional dataset cards, schema
validation and quality analysis.
"""

from __future__ import annotations

from .cli import main
from .exceptions import MigrationError
from .memory_storage import MemoryStorage
from .models import MigrationOptions
from .orchestrator import MigrationOrchestrator
from .service import MigrationService, create_storage
from .sql_storage import SqlStorage
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "MemoryStorage",
    "MigrationError",
    "MigrationOptions",
    "MigrationOrchestrator",
    "MigrationService",
    "SqlStorage",
    "create_storage",
    "main",
    "setup_logging",
]
