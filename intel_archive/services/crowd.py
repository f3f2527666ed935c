"""
Crowd Media Analysis

Crowd counting and geolocation of a photo or video clip through the vision
model, and the conversion of an estimate into a loose candidate record for
the archive.
"""

import asyncio
import base64

from google.genai import types
from instructor import Image
from loguru import logger

from intel_archive.config import get_settings
from intel_archive.exceptions import CrowdAnalysisFailure, RateLimited, is_rate_limit_error
from intel_archive.models import CROWD_TITLE_PREFIX, CrowdEstimate, EventCategory, SourceType
from intel_archive.services.extraction import get_instructor_client


CROWD_ANALYSIS_PROMPT = """
TACTICAL MEDIA ANALYSIS ({kind})

OBJECTIVES:
1. CROWD COUNT: Be precise. Estimate from the visible density.
2. GEOLOCATION: Use street signs, architecture, landmarks or metadata.
3. COORDINATES: Estimated latitude/longitude of the street or landmark.
4. HAZARDS: Fires, weapons, arrests or casualties.

CONTEXT FROM THE POST:
{context}
"""

# Confidence -> reliability score of the derived candidate
CONFIDENCE_RELIABILITY = {"High": 9, "Medium": 7, "Low": 5}

SUPPORTED_MEDIA_PREFIXES = ("image/", "video/")


def _media_message(data: bytes, mime_type: str, context: str):
    """User message carrying the prompt and the media inline."""
    kind = "VIDEO" if mime_type.startswith("video/") else "IMAGE"
    prompt = CROWD_ANALYSIS_PROMPT.format(kind=kind, context=context or "None")

    if kind == "IMAGE":
        encoded = base64.b64encode(data).decode("ascii")
        image = Image.from_base64(f"data:{mime_type};base64,{encoded}")
        return {"role": "user", "content": [prompt, image]}

    # Videos go to Gemini as an inline part
    return types.Content(
        role="user",
        parts=[
            types.Part.from_bytes(data=data, mime_type=mime_type),
            types.Part.from_text(text=prompt),
        ],
    )


def analyze_crowd_media(
    data: bytes,
    mime_type: str,
    context: str = "",
    client=None,
) -> CrowdEstimate:
    """
    Estimate crowd size and location from a photo or a video clip.

    Args:
        data: Raw media bytes
        mime_type: MIME type of the media (image/* or video/*)
        context: Post text or operator notes shown next to the media
        client: Optional instructor client override

    Returns:
        CrowdEstimate

    Raises:
        RateLimited: The model signalled HTTP 429 or an exhausted quota
        CrowdAnalysisFailure: Unsupported media or any other failure
    """
    if not mime_type.startswith(SUPPORTED_MEDIA_PREFIXES):
        raise CrowdAnalysisFailure(f"Unsupported media type: {mime_type}")

    try:
        client = client or get_instructor_client(get_settings().vision_model)
        estimate = client.create(
            response_model=CrowdEstimate,
            messages=[_media_message(data, mime_type, context)],
            max_retries=2,
        )
    except Exception as e:
        logger.warning(f"[CROWD] Media analysis failed: {e}")
        if is_rate_limit_error(e):
            raise RateLimited(str(e)) from e
        raise CrowdAnalysisFailure(str(e)) from e

    logger.info(
        f"[CROWD] {estimate.min_estimate}-{estimate.max_estimate} people "
        f"({estimate.confidence}) at {estimate.location or 'unknown location'}"
    )
    return estimate


async def analyze_crowd_media_async(data: bytes, mime_type: str, context: str = "") -> CrowdEstimate:
    return await asyncio.to_thread(analyze_crowd_media, data, mime_type, context)


def crowd_to_candidate(
    estimate: CrowdEstimate,
    origin_url: str,
    is_manual: bool = False,
) -> dict | None:
    """
    Build a loose candidate record from a crowd estimate.

    Returns:
        The record, or None when no crowd was seen (min_estimate <= 0)
    """
    if estimate.min_estimate <= 0:
        return None

    crowd_count = round((estimate.min_estimate + estimate.max_estimate) / 2)
    hazards = ", ".join(estimate.hazards) if estimate.hazards else "none"

    record = {
        "title": f"{CROWD_TITLE_PREFIX} {estimate.location or 'Unknown'} ({estimate.crowd_type})",
        "summary": estimate.description,
        "category": EventCategory.CIVIL_UNREST.value,
        "location_name": estimate.location or "Unknown",
        "lat": estimate.lat,
        "lng": estimate.lng,
        "crowd_count": crowd_count,
        "reliability_score": CONFIDENCE_RELIABILITY.get(estimate.confidence, 5),
        "reliability_reason": f"Crowd analysis, {estimate.confidence} confidence. Hazards: {hazards}",
        "source_type": SourceType.MANUAL.value if is_manual else SourceType.TELEGRAM.value,
        "origin_url": origin_url,
        "is_crowd_derived": True,
        "is_manual_origin": is_manual,
    }
    if estimate.date:
        record["event_date"] = estimate.date
    return record
