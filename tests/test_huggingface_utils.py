"""
Tests for Hugging Face utilities module.
"""

from unittest.mock import Mock, patch

import pytest

from dataset_migrator.exceptions import InvalidUrlError, PlatformError
from dataset_migrator.huggingface_utils import (
    HUB_URL,
    create_dataset_repo,
    get_dataset_info,
    list_dataset_files,
    parse_dataset_id,
)

URL = "https://huggingface.co/datasets/owner/iris"


def _response(status: int, payload: dict | None = None, reason: str = "") -> Mock:
    response = Mock()
    response.status_code = status
    response.ok = status < 400
    response.reason = reason
    response.json.return_value = payload or {}
    return response


@pytest.mark.unit
class TestParseDatasetId:
    """Test Hub URL parsing."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://huggingface.co/datasets/owner/iris",
            "https://huggingface.co/owner/iris",
            "https://huggingface.co/datasets/owner/iris?row=3",
        ],
    )
    def test_valid_urls(self, url: str) -> None:
        assert parse_dataset_id(url) == "owner/iris"

    def test_invalid_url(self) -> None:
        with pytest.raises(InvalidUrlError, match="Invalid Hugging Face dataset URL"):
            parse_dataset_id("https://github.com/owner/iris")


@pytest.mark.unit
class TestDatasetInfo:
    """Test metadata mapping."""

    def test_license_from_card_data(self) -> None:
        payload = {
            "id": "owner/iris",
            "author": "owner",
            "description": "Flowers",
            "cardData": {"license": ["mit", "apache-2.0"]},
            "tags": ["task_categories:tabular-classification"],
            "downloads": 42,
            "lastModified": "2024-01-15T10:30:00.000Z",
        }
        with patch("dataset_migrator.huggingface_utils.http_utils.get_json", return_value=payload) as mock_get:
            info = get_dataset_info("hf_token", URL)

        assert mock_get.call_args.kwargs["headers"] == {"Authorization": "Bearer hf_token"}
        assert info.name == "iris"
        assert info.title == "owner/iris"
        assert info.metadata["license"] == "mit, apache-2.0"
        assert info.metadata["downloads"] == 42

    def test_license_from_tags(self) -> None:
        payload = {"id": "owner/iris", "tags": ["license:cc-by-4.0"]}
        with patch("dataset_migrator.huggingface_utils.http_utils.get_json", return_value=payload):
            info = get_dataset_info(None, URL)

        assert info.metadata["license"] == "cc-by-4.0"


@pytest.mark.unit
class TestListDatasetFiles:
    """Test the recursive tree listing."""

    def test_skips_directories(self) -> None:
        entries = [
            {"type": "directory", "path": "data"},
            {"type": "file", "path": "data/train.parquet", "size": 1000},
            {"type": "file", "path": "README.md", "size": 20},
        ]
        with patch(
            "dataset_migrator.huggingface_utils.http_utils.get_json_page", return_value=(entries, None)
        ) as mock_get:
            files = list_dataset_files(None, URL)

        assert mock_get.call_args.args[0] == f"{HUB_URL}/api/datasets/owner/iris/tree/main"
        assert mock_get.call_args.kwargs["params"] == {"recursive": "true"}
        assert [(f.name, f.path, f.size, f.type) for f in files] == [
            ("train.parquet", "data/train.parquet", 1000, "parquet"),
            ("README.md", "README.md", 20, "md"),
        ]

    def test_follows_next_links(self) -> None:
        next_url = f"{HUB_URL}/api/datasets/owner/iris/tree/main?recursive=true&cursor=abc"
        first_page = [{"type": "file", "path": f"shards/{i:04d}.parquet", "size": 10} for i in range(1000)]
        second_page = [{"type": "file", "path": "shards/1000.parquet", "size": 10}]
        with patch(
            "dataset_migrator.huggingface_utils.http_utils.get_json_page",
            side_effect=[(first_page, next_url), (second_page, None)],
        ) as mock_get:
            files = list_dataset_files(None, URL)

        assert mock_get.call_count == 2
        assert mock_get.call_args_list[1].args[0] == next_url
        assert mock_get.call_args_list[1].kwargs["params"] is None
        assert len(files) == 1001
        assert files[-1].path == "shards/1000.parquet"

    def test_unexpected_payload(self) -> None:
        with (
            patch(
                "dataset_migrator.huggingface_utils.http_utils.get_json_page",
                return_value=({"error": "Revision not found"}, None),
            ),
            pytest.raises(PlatformError, match="returned an unexpected payload"),
        ):
            list_dataset_files(None, URL)


@pytest.mark.unit
class TestCreateDatasetRepo:
    """Test repository creation."""

    def test_creates_under_token_namespace(self) -> None:
        with (
            patch("dataset_migrator.huggingface_utils.http_utils.get_json", return_value={"name": "tester"}),
            patch(
                "dataset_migrator.huggingface_utils.http_utils.post_json",
                return_value=_response(200, {"url": "https://huggingface.co/datasets/tester/iris"}),
            ) as mock_post,
        ):
            url = create_dataset_repo("hf_token", "iris", private=True)

        assert url == "https://huggingface.co/datasets/tester/iris"
        assert mock_post.call_args.args[1] == {"type": "dataset", "name": "iris", "private": True}

    def test_existing_repository_is_an_error(self) -> None:
        with (
            patch("dataset_migrator.huggingface_utils.http_utils.get_json", return_value={"name": "tester"}),
            patch("dataset_migrator.huggingface_utils.http_utils.post_json", return_value=_response(409)),
            pytest.raises(PlatformError, match="Repository tester/iris already exists") as exc_info,
        ):
            create_dataset_repo("hf_token", "iris")

        assert exc_info.value.status == 409

    def test_falls_back_to_constructed_url(self) -> None:
        with (
            patch("dataset_migrator.huggingface_utils.http_utils.get_json", return_value={"name": "tester"}),
            patch("dataset_migrator.huggingface_utils.http_utils.post_json", return_value=_response(200)),
        ):
            assert create_dataset_repo("hf_token", "iris") == f"{HUB_URL}/datasets/tester/iris"

    def test_requires_token(self) -> None:
        with pytest.raises(PlatformError, match="A Hugging Face token is required"):
            create_dataset_repo(None, "iris")
