"""Pydantic schemas for structured event extraction from scraped intelligence content."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


# ---- Type definitions for standardization ----

ExtractedCategory = Literal[
    "Military",
    "Political",
    "Cyber",
    "Terrorism",
    "Civil Unrest",
    "Other",
]


# ---- Classes for Structured Extraction ----


class ExtractedCasualties(BaseModel):
    """Civilian casualty counts reported for the event."""

    dead: Optional[int] = Field(None, description="Number of civilians killed. Only if explicitly reported.")
    injured: Optional[int] = Field(None, description="Number of civilians injured.")
    detained: Optional[int] = Field(None, description="Number of people detained or arrested.")


class ExtractedSecurityCasualties(BaseModel):
    """Casualties among security forces (police, military, militia)."""

    dead: Optional[int] = Field(None, description="Number of security force members killed.")
    injured: Optional[int] = Field(None, description="Number of security force members injured.")


class ExtractedEventSchema(BaseModel):
    """
    One event as read from the content.

    Every field is optional: the normalizer fills defaults, so a partially
    described event is still kept.
    """

    title: Optional[str] = Field(None, description="Short factual title of the event.")
    summary: Optional[str] = Field(None, description="Brief analysis of what happened, two or three sentences.")
    category: Optional[ExtractedCategory] = Field(None, description="Event category.")
    date: Optional[str] = Field(
        None,
        description="Date of the event as YYYY-MM-DD. Resolve relative dates against the post date.",
    )
    location_name: Optional[str] = Field(
        None,
        description="Hierarchical location, most specific first: 'Neighborhood, City, Province, Country'.",
    )
    lat: Optional[float] = Field(None, description="Latitude of the neighborhood or city center.")
    lng: Optional[float] = Field(None, description="Longitude of the neighborhood or city center.")
    source_id: Optional[str] = Field(
        None,
        description="ID of the message the event was read from (the value after 'ID:' in the content).",
    )
    crowd_count: Optional[int] = Field(None, description="Estimated number of protestors or participants.")
    civilian_casualties: Optional[ExtractedCasualties] = None
    security_casualties: Optional[ExtractedSecurityCasualties] = None


class ExtractionResponse(BaseModel):
    """All events found in one page of content. Empty when nothing relevant is reported."""

    events: list[ExtractedEventSchema] = Field(
        default_factory=list,
        description="One entry per distinct real-world event. Do not repeat the same event.",
    )
