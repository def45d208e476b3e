"""
Lookup Schemas

Display data for the two relations a statement points at:
the politician who made it and the profile of the person who recorded it.
These are read-only here. Their CRUD lives outside the statement engine.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PartySummary(BaseModel):
    """Party display data shown next to a politician."""
    id: UUID
    name: str
    abbreviation: Optional[str] = None
    color_hex: Optional[str] = Field(
        default=None,
        description="Party color as #RRGGBB",
        examples=["#1E90FF"]
    )


class PoliticianSummary(BaseModel):
    """The subject of a statement."""
    id: UUID
    first_name: str
    last_name: str
    party: PartySummary

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class AuthorSummary(BaseModel):
    """
    Public attribution for the contributor who recorded a statement.

    Only the display name is public. Email and other profile data never
    leave the profile relation.
    """
    id: UUID
    display_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
