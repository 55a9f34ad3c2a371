"""Dataset quality analysis and dataset card generation.

Two providers implement the AnalysisProvider protocol:

- OpenAIAnalysisProvider asks a chat model (any OpenAI-compatible endpoint)
  for a JSON assessment and for a Hugging Face style dataset card.
- HeuristicAnalysisProvider works offline from metadata and the file
  listing. It is used when no API key is configured.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Final

from openai import APIError, AsyncOpenAI

from .exceptions import AnalysisError
from .models import AnalysisResult
from .utils import format_bytes

if TYPE_CHECKING:
    from .config import Settings
    from .models import DatasetFile
    from .protocols import AnalysisProvider

logger: logging.Logger = logging.getLogger(__name__)

SAMPLE_LINES: Final[int] = 5
TABULAR_TYPES: Final[frozenset[str]] = frozenset({"csv", "tsv", "parquet", "json", "jsonl", "arrow"})
_TEXT_TYPES: Final[frozenset[str]] = frozenset({"csv", "tsv", "txt", "json", "jsonl", "md"})
_FENCED_JSON: Final[re.Pattern[str]] = re.compile(r"```(?:json)?\s*\n(.*?)\n```", re.DOTALL)
_BARE_JSON: Final[re.Pattern[str]] = re.compile(r"\{.*\}", re.DOTALL)

_ANALYSIS_PROMPT: Final[str] = """\
Please analyze this dataset and provide a detailed assessment.

Dataset Name: {name}
Description: {description}
Metadata: {metadata}

Sample Data:
{sample}

Reply with JSON only, using this structure:
{{
  "summary": "A brief summary of the dataset and its potential applications",
  "quality": 80,
  "completeness": 85,
  "usability": 75,
  "issues": ["Issue 1", "Issue 2"],
  "recommendations": ["Recommendation 1", "Recommendation 2"],
  "metrics": {{}}
}}
Scores are integers from 0 to 100. Metrics hold any relevant values extracted from the sample.
"""

_CARD_PROMPT: Final[str] = """\
Please create a comprehensive dataset card for the Hugging Face Hub. It will be used as README.md.

Dataset Name: {name}
Description: {description}
Metadata: {metadata}
{analysis}
Follow the format of high-quality Hugging Face dataset cards: dataset summary, supported tasks,
languages, dataset structure, data instances, dataset creation, considerations for using the data
and additional information. Start with YAML metadata in Hugging Face's format.
"""


def _score(value: Any) -> int:
    try:
        return max(0, min(100, round(float(value))))
    except (TypeError, ValueError):
        return 0


def _strings(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)]


def parse_analysis(text: str) -> AnalysisResult:
    """Extract the JSON assessment from a model reply."""
    match = _FENCED_JSON.search(text) or _BARE_JSON.search(text)
    if not match:
        msg = "Could not find JSON in the analysis reply"
        raise AnalysisError(msg)
    raw = match.group(1) if match.re is _FENCED_JSON else match.group(0)
    try:
        data = json.loads(raw)
    except ValueError as e:
        msg = f"Could not parse JSON from the analysis reply: {e}"
        raise AnalysisError(msg) from e
    if not isinstance(data, dict):
        msg = "Analysis reply JSON is not an object"
        raise AnalysisError(msg)
    metrics = data.get("metrics") or {}
    if not isinstance(metrics, dict):
        msg = f"Analysis reply metrics must be an object, got {type(metrics).__name__}"
        raise AnalysisError(msg)

    return AnalysisResult(
        summary=str(data.get("summary") or ""),
        quality=_score(data.get("quality")),
        completeness=_score(data.get("completeness")),
        usability=_score(data.get("usability")),
        issues=_strings(data.get("issues")),
        recommendations=_strings(data.get("recommendations")),
        metrics=dict(metrics),
    )


def build_sample(files: Sequence[DatasetFile], samples: Mapping[str, bytes] | None = None) -> str:
    """Describe the files for analysis: a listing plus the first lines of downloaded text files."""
    if not files:
        return "No files available for analysis"

    lines = [f"Sample of {len(files)} files:"]
    lines.extend(f"- {f.name} ({f.type or 'unknown'}, {format_bytes(f.size or 0)})" for f in files)
    for f in files:
        content = (samples or {}).get(f.path)
        if not content or (f.type or "").lower() not in _TEXT_TYPES:
            continue
        head = content.decode("utf-8", errors="replace").splitlines()[:SAMPLE_LINES]
        lines.append("")
        lines.append(f"First lines of {f.name}:")
        lines.extend(head)
    return "\n".join(lines)


def render_card_template(
    name: str,
    description: str,
    metadata: Mapping[str, Any],
    analysis: Mapping[str, Any] | None = None,
) -> str:
    """Render a dataset card without a model."""
    slug = name.lower().replace(" ", "-")
    language = metadata.get("language") or "en"
    license_name = metadata.get("license") or "unknown"
    categories = metadata.get("categories") or metadata.get("tags") or []
    purpose = ", ".join(str(c) for c in categories) if categories else "various applications"

    sections = [
        "---",
        "datasets:",
        f"- {slug}",
        "language:",
        f"- {language}",
        f"license: {license_name}",
        "---",
        "",
        f"# Dataset Card for {name}",
        "",
        "## Dataset Description",
        "",
        description or "[More Information Needed]",
        "",
        "### Dataset Summary",
        "",
        f"A dataset for {purpose}.",
        "",
    ]
    if analysis:
        sections += [
            "### Quality Assessment",
            "",
            f"- Quality: {analysis.get('quality')}/100",
            f"- Completeness: {analysis.get('completeness')}/100",
            f"- Usability: {analysis.get('usability')}/100",
            "",
        ]
    sections += [
        "## Dataset Structure",
        "",
        "### Data Instances",
        "",
        "[More Information Needed]",
        "",
        "## Considerations for Using the Data",
        "",
        "### License",
        "",
        str(metadata.get("license") or "License information not provided."),
        "",
        "## Additional Information",
        "",
        "This dataset card was automatically generated.",
        "",
    ]
    return "\n".join(sections)


class OpenAIAnalysisProvider:
    """Analysis through a chat completion model."""

    ai_generated: bool = True

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        base_url: str | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._model = model

    async def _complete(self, prompt: str, max_tokens: int) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except APIError as e:
            msg = f"Analysis request to {self._model} failed: {e}"
            raise AnalysisError(msg) from e

        if not response.choices or not response.choices[0].message.content:
            msg = f"{self._model} returned an empty reply"
            raise AnalysisError(msg)
        return response.choices[0].message.content

    async def analyze(
        self,
        name: str,
        description: str,
        metadata: Mapping[str, Any],
        sample: str,
    ) -> AnalysisResult:
        prompt = _ANALYSIS_PROMPT.format(
            name=name,
            description=description,
            metadata=json.dumps(dict(metadata), indent=2, default=str),
            sample=sample,
        )
        text = await self._complete(prompt, max_tokens=1024)
        result = parse_analysis(text)
        logger.debug(f"Analysis of {name}: quality={result.quality}")
        return result

    async def generate_card(
        self,
        name: str,
        description: str,
        metadata: Mapping[str, Any],
        analysis: Mapping[str, Any] | None = None,
    ) -> str:
        analysis_text = f"Analysis: {json.dumps(dict(analysis), indent=2, default=str)}\n" if analysis else ""
        prompt = _CARD_PROMPT.format(
            name=name,
            description=description,
            metadata=json.dumps(dict(metadata), indent=2, default=str),
            analysis=analysis_text,
        )
        return await self._complete(prompt, max_tokens=2048)


class HeuristicAnalysisProvider:
    """Offline analysis from the metadata and the sample's file listing."""

    ai_generated: bool = False

    async def analyze(
        self,
        name: str,
        description: str,
        metadata: Mapping[str, Any],
        sample: str,
    ) -> AnalysisResult:
        issues: list[str] = []
        recommendations: list[str] = []

        has_description = bool(description.strip())
        license_name = str(metadata.get("license") or "")
        has_license = bool(license_name) and license_name.lower() != "unknown"
        has_files = not sample.startswith("No files")
        has_readme = "readme" in sample.lower()
        has_tabular = any(f".{t}" in sample.lower() for t in TABULAR_TYPES)

        if not has_description:
            issues.append("Dataset has no description")
            recommendations.append("Add a description explaining how the data was collected")
        if not has_license:
            issues.append("License is missing or unknown")
            recommendations.append("Declare a license so others know how the data may be used")
        if not has_files:
            issues.append("No files were found in the dataset")
        if not has_readme:
            recommendations.append("Add a README.md dataset card")

        present = sum([has_description, has_license, has_files, has_readme])
        completeness = present * 25
        quality = 70 if has_tabular else 50
        usability = round((completeness + quality) / 2)

        return AnalysisResult(
            summary=f"Heuristic assessment of {name} based on its metadata and file listing.",
            quality=quality,
            completeness=completeness,
            usability=usability,
            issues=issues,
            recommendations=recommendations,
            metrics={"has_tabular_files": has_tabular, "has_readme": has_readme},
        )

    async def generate_card(
        self,
        name: str,
        description: str,
        metadata: Mapping[str, Any],
        analysis: Mapping[str, Any] | None = None,
    ) -> str:
        return render_card_template(name, description, metadata, analysis)


def create_analysis_provider(settings: Settings) -> AnalysisProvider:
    if settings.openai_api_key:
        return OpenAIAnalysisProvider(
            settings.openai_api_key,
            model=settings.model,
            base_url=settings.openai_base_url,
        )
    logger.info("No OpenAI API key configured; using heuristic dataset analysis")
    return HeuristicAnalysisProvider()
