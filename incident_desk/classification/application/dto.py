"""
Classification Application DTOs
===============================

Pydantic models for the classification API.
"""

from typing import Dict, List

from pydantic import BaseModel, Field


# ========== Request DTOs ==========

class ClassifyRequest(BaseModel):
    """Text to classify, with optional @-mentions."""
    text: str = Field(..., min_length=1, description="Free-text report")
    mentioned_user_ids: List[str] = Field(
        default_factory=list,
        description="User ids mentioned in the message"
    )


class ReloadRequest(BaseModel):
    """Admin request to reload vocabularies and the user directory."""
    requester_id: str = Field(..., min_length=1, description="User asking for the reload")


# ========== Response DTOs ==========

class ClassifyResponse(BaseModel):
    """Classification result."""
    teams: List[str] = Field(..., description="Teams the report routes to")
    tier: str = Field(..., description="explicit, mention, keywords or none")
    scores: Dict[str, float] = Field(default_factory=dict, description="Keyword scores")
    needs_clarification: bool = Field(..., description="True when no team matched")


class ReloadResponse(BaseModel):
    """Outcome of reloading keyword and user directory files."""
    keywords_reloaded: bool
    users_reloaded: bool
    teams: List[str]
    user_count: int
