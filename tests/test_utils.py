"""
Tests for utility functions.
"""

import subprocess
from unittest.mock import Mock, patch

import pytest

from dataset_migrator.utils import (
    InvalidPassPathError,
    PassError,
    file_extension,
    format_bytes,
    get_pass_value,
    repo_slug,
)


@pytest.mark.unit
class TestFormatBytes:
    """Test human-readable sizes."""

    @pytest.mark.parametrize(
        ("size", "expected"),
        [
            (0, "0 Bytes"),
            (512, "512 Bytes"),
            (1024, "1 KB"),
            (1536, "1.5 KB"),
            (3_100_000, "2.96 MB"),
            (5 * 1024**3, "5 GB"),
        ],
    )
    def test_sizes(self, size: int, expected: str) -> None:
        assert format_bytes(size) == expected


@pytest.mark.unit
class TestNames:
    """Test file and repository name helpers."""

    def test_file_extension(self) -> None:
        assert file_extension("train.csv") == "csv"
        assert file_extension("archive.tar.gz") == "gz"
        assert file_extension("LICENSE") == "LICENSE"

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Titanic Data", "Titanic-Data"),
            ("  iris/flowers (v2) ", "iris-flowers-v2"),
            ("dataset.v1", "dataset.v1"),
            ("!!!", "dataset"),
        ],
    )
    def test_repo_slug(self, name: str, expected: str) -> None:
        assert repo_slug(name) == expected


@pytest.mark.unit
class TestGetPassValue:
    """Test the pass utility wrapper."""

    def test_returns_stripped_value(self) -> None:
        with patch("dataset_migrator.utils.subprocess.run", return_value=Mock(stdout="secret\n")) as mock_run:
            assert get_pass_value("github/cli/token") == "secret"

        assert mock_run.call_args.args[0] == ["pass", "github/cli/token"]

    def test_invalid_path(self) -> None:
        with pytest.raises(ValueError, match="Invalid pass path"):
            get_pass_value("../etc/passwd")

    def test_missing_entry(self) -> None:
        error = subprocess.CalledProcessError(1, ["pass"], stderr="Error: x is not in the password store.")
        with (
            patch("dataset_migrator.utils.subprocess.run", side_effect=error),
            pytest.raises(InvalidPassPathError),
        ):
            get_pass_value("missing/token")

    def test_pass_not_installed(self) -> None:
        with (
            patch("dataset_migrator.utils.subprocess.run", side_effect=FileNotFoundError("pass")),
            pytest.raises(PassError, match="not installed"),
        ):
            get_pass_value("github/cli/token")
