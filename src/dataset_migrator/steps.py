"""Step plan of a migration job.

The steps of a job are data: an ordered list of names built once from the
migration options and persisted before execution starts. Pollers can read
which steps exist without knowing which one is running.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from .models import MigrationOptions

REPOSITORY_VALIDATION: Final[str] = "Repository validation"
FILE_SELECTION: Final[str] = "File selection"
DOWNLOADING_FILES: Final[str] = "Downloading files"
CREATING_DESTINATION: Final[str] = "Creating destination repository"
DATASET_CARD: Final[str] = "Dataset card creation"
SCHEMA_VALIDATION: Final[str] = "Schema validation"
AI_ANALYSIS: Final[str] = "AI analysis"
FINALIZATION: Final[str] = "Finalization"

# Job progress reached once each step has completed (cumulative)
CHECKPOINTS: Final[dict[str, int]] = {
    REPOSITORY_VALIDATION: 10,
    FILE_SELECTION: 20,
    DOWNLOADING_FILES: 40,
    CREATING_DESTINATION: 60,
    DATASET_CARD: 70,
    SCHEMA_VALIDATION: 80,
    AI_ANALYSIS: 90,
    FINALIZATION: 100,
}

_BASE_STEPS: Final[tuple[str, ...]] = (
    REPOSITORY_VALIDATION,
    FILE_SELECTION,
    DOWNLOADING_FILES,
    CREATING_DESTINATION,
)


def build_step_plan(options: MigrationOptions) -> list[str]:
    """Return the ordered step names for a migration with these options."""
    plan = list(_BASE_STEPS)
    if options.generate_card:
        plan.append(DATASET_CARD)
    if options.validate_schema:
        plan.append(SCHEMA_VALIDATION)
    if options.run_analysis:
        plan.append(AI_ANALYSIS)
    plan.append(FINALIZATION)
    return plan
