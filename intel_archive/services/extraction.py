"""Event extraction service using LLM with structured output."""

import asyncio

import instructor
from loguru import logger

from intel_archive.config import get_settings
from intel_archive.exceptions import ExtractionFailure, RateLimited, is_rate_limit_error
from intel_archive.models import SourceType
from intel_archive.services.extraction_schemas import ExtractionResponse


SOURCE_HEADER = "SOURCE: "

LANGUAGE_NAMES = {"en": "English", "fa": "Persian"}

# System prompt for extraction
EXTRACTION_SYSTEM_PROMPT = """
You are a geospatial intelligence analyst. You read scraped channel posts and
web articles and extract the distinct real-world events they report.

CORE PRINCIPLES:
1. Use ONLY information present in the content
2. NEVER invent casualty or crowd figures; leave them null when not reported
3. One entry per real-world event: several posts about the same incident are ONE event
4. Ignore opinion, advertising and posts that do not report an event

CATEGORIES:
Military, Political, Cyber, Terrorism, Civil Unrest, Other

COORDINATES:
Give an accurate latitude/longitude for the specific neighborhood, or the
city center when only the city is known. Leave them null when the place
cannot be determined.

DATES:
Each post line carries its publication DATE. Resolve relative references
("yesterday", "last night") against it. Output YYYY-MM-DD.

MESSAGE IDS:
Lines have the form "ID: <id> | DATE: <date> | MSG: <text>". Put the ID of
the message an event was read from in source_id.
"""


def get_instructor_client(model: str | None = None):
    """Get instructor client with Gemini provider."""
    settings = get_settings()
    api_key = settings.gemini_api_key

    if not api_key:
        raise ValueError("GEMINI_API_KEY not configured")

    return instructor.from_provider(
        f"google/{model or settings.extraction_model}",
        api_key=api_key,
    )


def source_url_from_content(raw_content: str) -> str | None:
    """Origin URL from the 'SOURCE: <url>' header line of scraped content."""
    first_line = raw_content.split("\n", 1)[0].strip()
    if first_line.startswith(SOURCE_HEADER):
        return first_line[len(SOURCE_HEADER):].strip() or None
    return None


def _build_extraction_prompt(
    raw_content: str,
    region: str | None = None,
    language: str | None = None,
) -> str:
    """
    Build the user message: focus region, output language, then the content.

    The content is truncated to max_content_chars.
    """
    settings = get_settings()
    language = language or settings.extraction_language

    parts = [
        f"FOCUS REGION: {region or 'Global'}",
        f"OUTPUT LANGUAGE (title, summary): {LANGUAGE_NAMES.get(language, language)}",
        "",
        "## CONTENT",
        raw_content[: settings.max_content_chars],
    ]
    return "\n".join(parts)


def classify_error(error: Exception) -> ExtractionFailure:
    """Map a collaborator exception onto the ingestion error taxonomy."""
    if isinstance(error, ExtractionFailure):
        return error
    if is_rate_limit_error(error):
        return RateLimited(str(error))
    return ExtractionFailure(str(error))


def extract_events(
    raw_content: str,
    source_type: SourceType = SourceType.WEB,
    region: str | None = None,
    language: str | None = None,
    client=None,
) -> list[dict]:
    """
    Extract candidate event records from raw content using the LLM.

    Args:
        raw_content: Scraped page or pasted text
        source_type: Kind of source the content came from
        region: Optional focus region
        language: Output language code ("en", "fa")
        client: Optional instructor client override

    Returns:
        Loose candidate records for the normalizer. May be empty.

    Raises:
        RateLimited: The model signalled HTTP 429 or an exhausted quota
        ExtractionFailure: Any other failure of the model call
    """
    if not raw_content.strip():
        return []

    try:
        client = client or get_instructor_client()
        response = client.create(
            response_model=ExtractionResponse,
            messages=[
                {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
                {"role": "user", "content": _build_extraction_prompt(raw_content, region, language)},
            ],
            max_retries=2,
        )
    except Exception as e:
        failure = classify_error(e)
        logger.warning(f"[EXTRACT] {type(failure).__name__}: {e}")
        raise failure from e

    origin_url = source_url_from_content(raw_content)
    records = []
    for event in response.events:
        record = event.model_dump(exclude_none=True)
        record["source_type"] = source_type.value
        if origin_url:
            record["origin_url"] = origin_url
        records.append(record)

    logger.info(f"[EXTRACT] {len(records)} events from {origin_url or 'pasted content'}")
    return records


async def extract_events_async(
    raw_content: str,
    source_type: SourceType = SourceType.WEB,
    region: str | None = None,
    language: str | None = None,
) -> list[dict]:
    """Run extract_events in a worker thread."""
    return await asyncio.to_thread(extract_events, raw_content, source_type, region, language)
