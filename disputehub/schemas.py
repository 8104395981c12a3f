"""
Pydantic Schemas for DisputeHub
===============================

Request and response models for the HTTP API. Service results are
returned as plain dicts built by the `*_to_dict` helpers.
"""

from typing import List, Optional
from datetime import datetime

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Service version")
    timestamp: datetime = Field(..., description="Current timestamp")


class CreateDisputeRequest(BaseModel):
    """Request to open a new dispute"""
    title: str = Field(..., min_length=1, max_length=255, description="Dispute title")
    description: Optional[str] = Field(None, description="Free-text description")

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Unpaid wages from Acme Ltd",
                "description": "Final month of wages never paid",
            }
        }


class StrategyDeltaModel(BaseModel):
    """Facts the chat agent extracted this turn"""
    key_facts: List[str] = Field(default_factory=list)
    evidence_mentioned: List[str] = Field(default_factory=list)
    desired_outcome: Optional[str] = None
    dispute_type: Optional[str] = None


class AgentTurnRequest(BaseModel):
    """One conversational turn: extracted delta plus the agent's candidate reply"""
    delta: StrategyDeltaModel = Field(default_factory=StrategyDeltaModel)
    candidate_response: str = Field("", description="Reply the agent wants to show")


class CreateEvidenceRequest(BaseModel):
    """Register an uploaded evidence file"""
    file_url: str = Field(..., description="Where the uploaded file is stored")
    file_name: str = Field(..., description="Original file name")
    title: str = Field(..., min_length=1, max_length=255)
    content_type: Optional[str] = Field(None, description="MIME type reported by the upload")
    file_size: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None
    evidence_date: Optional[datetime] = None


class UpdateEvidenceRequest(BaseModel):
    """Mutable evidence metadata"""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    evidence_date: Optional[datetime] = None


class TriggerGateRequest(BaseModel):
    """Admin request to run the decision gate for a case"""
    case_id: str = Field(..., description="Dispute ID")
