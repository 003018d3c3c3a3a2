"""
Pydantic models for search grounding metadata.

These models define the structure of the sources Gemini Search Grounding
reports alongside a generated answer: the web chunks it cited and the
segments of the answer each chunk supports.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class GroundingChunk(BaseModel):
    """A web source used for grounding from Gemini Search."""

    uri: Optional[str] = Field(None, description="Full URL of the web page (may be a redirect)")
    title: Optional[str] = Field(None, description="Title of the web page")
    domain: Optional[str] = Field(None, description="Domain of the web source")
    text: Optional[str] = Field(None, description="Excerpt text the service attached to the chunk")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "uri": "https://business.example.edu/part-time-mba/tuition",
                "title": "Tuition & Financial Aid | Part-Time MBA",
                "domain": "example.edu",
            }
        }
    )


class GroundingSupport(BaseModel):
    """Support information linking answer segments to grounding chunks."""

    segment_text: Optional[str] = Field(None, description="Text segment being supported")
    start_index: Optional[int] = Field(None, description="Start index in response")
    end_index: Optional[int] = Field(None, description="End index in response")
    confidence_scores: list[float] = Field(default_factory=list, description="Confidence scores")
    grounding_chunk_indices: list[int] = Field(
        default_factory=list, description="Indices of supporting grounding chunks"
    )


class GroundingMetadata(BaseModel):
    """
    Parsed grounding metadata from a Gemini Search response.

    Chunk order is significant: supports refer to chunks by index.
    """

    web_search_queries: list[str] = Field(
        default_factory=list, description="Search queries Gemini performed"
    )
    grounding_chunks: list[GroundingChunk] = Field(
        default_factory=list, description="Web sources used for grounding"
    )
    grounding_supports: list[GroundingSupport] = Field(
        default_factory=list, description="Links between answer segments and sources"
    )

    @property
    def source_urls(self) -> list[str]:
        """Get all source URLs from grounding chunks."""
        return [chunk.uri for chunk in self.grounding_chunks if chunk.uri]

    def supports_for_chunk(self, index: int) -> list[GroundingSupport]:
        """Supports that cite the chunk at ``index``."""
        return [s for s in self.grounding_supports if index in s.grounding_chunk_indices]
