"""
Pytest configuration and fixtures.

This module configures pytest behavior for different test types:
- Integration tests: Fail on any warnings from the code under test
- Unit tests: Allow warnings

It also provides in-process fakes for the platform adapters and the
analysis provider, so migrations run deterministically without network.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from typing_extensions import override

import pytest

from dataset_migrator.exceptions import PlatformError
from dataset_migrator.memory_storage import MemoryStorage
from dataset_migrator.models import AnalysisResult, SourceFile, SourceInfo
from dataset_migrator.orchestrator import MigrationOrchestrator
from dataset_migrator.platforms import PlatformRegistry
from dataset_migrator.schema_validation import ColumnConsistencyValidator

if TYPE_CHECKING:
    from collections.abc import Generator, Mapping

# Store warning records during test execution
_integration_test_warnings: dict[str, list[logging.LogRecord]] = {}


class FakeSource:
    """Source platform serving a fixed dataset from memory."""

    label: str = "Fake repository"

    def __init__(
        self,
        info: SourceInfo | None = None,
        files: dict[str, bytes] | None = None,
    ) -> None:
        self.info = info or SourceInfo(
            name="Iris Data", title="iris", description="Iris measurements", metadata={"license": "MIT"}
        )
        self.files: dict[str, bytes] = (
            files
            if files is not None
            else {
                "data/train.csv": b"sepal_length,species\n5.1,setosa\n",
                "data/test.csv": b"Sepal_Length, species\n4.9,setosa\n",
                "README.md": b"# Iris\n",
            }
        )
        self.info_error: Exception | None = None
        self.download_error: Exception | None = None
        self.downloads: list[str] = []
        # When set, downloads wait until the event is set
        self.download_gate: asyncio.Event | None = None
        self.download_started = asyncio.Event()

    async def get_info(self, url: str) -> SourceInfo:
        if self.info_error is not None:
            raise self.info_error
        return self.info

    async def list_files(self, url: str) -> list[SourceFile]:
        if self.info_error is not None:
            raise self.info_error
        return [
            SourceFile(name=path.rsplit("/", 1)[-1], path=path, size=len(content), type=path.rsplit(".", 1)[-1])
            for path, content in self.files.items()
        ]

    async def download_file(self, url: str, path: str, max_bytes: int | None = None) -> bytes:
        self.download_started.set()
        if self.download_gate is not None:
            await self.download_gate.wait()
        if self.download_error is not None:
            raise self.download_error
        self.downloads.append(path)
        content = self.files[path]
        return content[:max_bytes] if max_bytes is not None else content


class FakeDestination:
    """Destination platform that records created repositories."""

    def __init__(self) -> None:
        self.created: list[tuple[str, bool]] = []
        self.error: Exception | None = None

    async def create_repository(self, name: str, private: bool = False) -> str:
        if self.error is not None:
            raise self.error
        self.created.append((name, private))
        return f"https://huggingface.co/datasets/tester/{name}"


class FakeAnalysis:
    """Analysis provider returning canned results."""

    ai_generated: bool = True

    def __init__(self) -> None:
        self.samples: list[str] = []
        self.card_requests: list[Mapping[str, Any] | None] = []

    async def analyze(self, name: str, description: str, metadata: Mapping[str, Any], sample: str) -> AnalysisResult:
        self.samples.append(sample)
        return AnalysisResult(
            summary=f"{name} looks fine",
            quality=80,
            completeness=70,
            usability=75,
            issues=["Few rows"],
            recommendations=["Add more rows"],
        )

    async def generate_card(
        self,
        name: str,
        description: str,
        metadata: Mapping[str, Any],
        analysis: Mapping[str, Any] | None = None,
    ) -> str:
        self.card_requests.append(analysis)
        return f"# Dataset Card for {name}\n"


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def destination() -> FakeDestination:
    return FakeDestination()


@pytest.fixture
def analysis() -> FakeAnalysis:
    return FakeAnalysis()


@pytest.fixture
def registry(source: FakeSource, destination: FakeDestination) -> PlatformRegistry:
    return PlatformRegistry(
        sources={"github": source, "kaggle": source, "huggingface": source},
        destinations={"huggingface": destination},
    )


@pytest.fixture
def orchestrator(storage: MemoryStorage, registry: PlatformRegistry, analysis: FakeAnalysis) -> MigrationOrchestrator:
    return MigrationOrchestrator(storage, registry, analysis, ColumnConsistencyValidator(), step_timeout=5)


@pytest.fixture
def unavailable_error() -> PlatformError:
    return PlatformError("Service unavailable", status=503)


class IntegrationTestWarningHandler(logging.Handler):
    """Custom logging handler to capture warnings during integration tests."""

    test_nodeid: str

    def __init__(self, test_nodeid: str) -> None:
        super().__init__()
        self.test_nodeid = test_nodeid
        self.setLevel(logging.WARNING)

    @override
    def emit(self, record: logging.LogRecord) -> None:
        """Capture WARNING and above level logs."""
        _integration_test_warnings.setdefault(self.test_nodeid, []).append(record)


@pytest.fixture(autouse=True)
def fail_on_log_warnings_for_integration_tests(
    request: pytest.FixtureRequest,
) -> Generator[None]:
    """
    Automatically fail integration tests if any WARNING level logs are emitted from the code under test.

    A successful migration should not log warnings or errors; failure scenarios
    log at ERROR level and are therefore unit tests.
    """
    if request.node.get_closest_marker("integration") is None:
        yield
        return

    test_nodeid = request.node.nodeid
    _integration_test_warnings[test_nodeid] = []

    handler = IntegrationTestWarningHandler(test_nodeid)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)

    try:
        yield
    finally:
        root_logger.removeHandler(handler)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None]:  # type: ignore[misc]
    """
    Hook to check for warnings after test execution and mark test as failed if warnings were detected.
    """
    outcome = yield
    report = outcome.get_result()

    if call.when == "call" and report.outcome == "passed":
        test_nodeid = item.nodeid
        warning_records = _integration_test_warnings.get(test_nodeid, [])

        if warning_records:
            warning_messages = [
                f"{record.levelname}: {record.getMessage()} (in {record.name}:{record.lineno})"
                for record in warning_records
            ]
            report.outcome = "failed"
            report.longrepr = f"Integration test failed: {len(warning_records)} warning(s) detected:\n" + "\n".join(
                f"  - {msg}" for msg in warning_messages
            )

        _integration_test_warnings.pop(test_nodeid, None)
