"""
Tests for the conftest.py warning detection.

Integration tests fail when the code under test logs a warning; unit tests
do not.
"""

import shutil
import subprocess
import sys
from pathlib import Path

import pytest

_WARNING_TEST = """
import pytest
from conftest import FakeSource

from dataset_migrator.exceptions import PlatformError
from dataset_migrator.memory_storage import MemoryStorage
from dataset_migrator.platforms import PlatformRegistry
from dataset_migrator.resolution import DatasetResolver


@pytest.mark.integration
@pytest.mark.asyncio
async def test_placeholder_dataset_warns():
    source = FakeSource()
    source.info_error = PlatformError("Service unavailable")
    resolver = DatasetResolver(MemoryStorage(), PlatformRegistry(sources={"github": source}))
    await resolver.resolve("github", "https://github.com/u/r")
"""


@pytest.mark.unit
class TestWarningDetection:
    """Verify how warnings from the code under test are treated."""

    @pytest.mark.asyncio
    async def test_unit_test_allows_warnings(self, storage, registry, source, unavailable_error) -> None:
        from dataset_migrator.resolution import DatasetResolver

        source.info_error = unavailable_error
        dataset = await DatasetResolver(storage, registry).resolve("github", "https://github.com/u/r")

        assert dataset.name.startswith("dataset-")

    def test_integration_test_with_warning_fails(self, tmp_path: Path) -> None:
        """Run a warning-emitting integration test in a subprocess and expect it to fail."""
        tests_dir = Path(__file__).parent
        shutil.copy(tests_dir / "conftest.py", tmp_path / "conftest.py")
        (tmp_path / "pytest.ini").write_text("[pytest]\nmarkers =\n    integration: integration test\n")
        test_file = tmp_path / "test_temp_warning.py"
        test_file.write_text(_WARNING_TEST)

        result = subprocess.run(  # noqa: S603
            [sys.executable, "-m", "pytest", str(test_file), "-v", "--tb=short", "-p", "no:cacheprovider"],
            capture_output=True,
            text=True,
            cwd=str(tmp_path),
            check=False,
        )

        assert result.returncode != 0, f"Expected test to fail but it passed:\n{result.stdout}"
        assert "warning(s) detected" in result.stdout, f"stdout: {result.stdout}\nstderr: {result.stderr}"
        assert "Could not read github source" in result.stdout
