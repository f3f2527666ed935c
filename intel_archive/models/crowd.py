"""Crowd media analysis result schema."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class CrowdEstimate(BaseModel):
    """Structured crowd count and geolocation estimate for a photo or video."""

    min_estimate: int = Field(..., ge=0, description="Lower bound of the visible crowd size.")
    max_estimate: int = Field(..., ge=0, description="Upper bound of the visible crowd size.")
    confidence: Literal["High", "Medium", "Low"] = Field(
        ..., description="Confidence in the count, based on visibility and density."
    )
    crowd_type: str = Field(
        "Unknown", description="Kind of gathering, e.g. 'Protest march', 'Funeral', 'Vigil'."
    )
    description: str = Field("", description="Short description of what the media shows.")
    hazards: list[str] = Field(
        default_factory=list,
        description="Visible hazards: fires, weapons, arrests, casualties.",
    )
    location: Optional[str] = Field(
        None, description="Street/landmark and city, from signs, architecture or metadata."
    )
    lat: Optional[float] = Field(None, description="Estimated latitude of the street/landmark.")
    lng: Optional[float] = Field(None, description="Estimated longitude of the street/landmark.")
    date: Optional[str] = Field(None, description="Date of the gathering as YYYY-MM-DD.")
