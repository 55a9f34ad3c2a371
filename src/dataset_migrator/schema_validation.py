"""Schema validation gate for migrations."""

from __future__ import annotations

import csv
import io
import logging
from typing import TYPE_CHECKING, Final

from .models import SchemaValidationResult

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from .models import DatasetFile

logger: logging.Logger = logging.getLogger(__name__)

_DELIMITERS: Final[dict[str, str]] = {"csv": ",", "tsv": "\t"}


def _normalize(column: str) -> str:
    return " ".join(column.split()).lower()


def read_header(content: bytes, delimiter: str) -> tuple[str, ...]:
    """Return the normalized header row of delimited text, or () for empty content."""
    text = content.decode("utf-8-sig", errors="replace")
    # Only the first line matters; a truncated sample may end mid-row
    first_line = text.splitlines()[0] if text else ""
    row = next(csv.reader(io.StringIO(first_line), delimiter=delimiter), [])
    return tuple(_normalize(column) for column in row)


class ColumnConsistencyValidator:
    """Checks that every downloaded CSV/TSV file has the same header row.

    Column names are compared case-insensitively and with whitespace
    collapsed. A dataset without tabular files passes.
    """

    def validate(self, files: Sequence[DatasetFile], samples: Mapping[str, bytes]) -> SchemaValidationResult:
        headers: dict[str, tuple[str, ...]] = {}
        for f in files:
            delimiter = _DELIMITERS.get((f.type or "").lower())
            content = samples.get(f.path)
            if delimiter is None or not content:
                continue
            headers[f.path] = read_header(content, delimiter)

        if not headers:
            return SchemaValidationResult(valid=True, message="No tabular files to validate")

        distinct = set(headers.values())
        if len(distinct) > 1:
            logger.debug(f"Differing headers: {headers}")
            return SchemaValidationResult(
                valid=False, message="Schema validation failed: inconsistent column names"
            )
        return SchemaValidationResult(valid=True, message=f"{len(headers)} tabular files share the same columns")
