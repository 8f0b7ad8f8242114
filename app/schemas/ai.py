# app/schemas/ai.py

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class CampaignContentRequest(BaseModel):
    segment_rules: Dict[str, Any] = Field(..., description="Rule tree of the target segment")
    campaign_name: Optional[str] = Field(None, max_length=200)
    segment_description: Optional[str] = Field(None, max_length=2000)


class CampaignContentResponse(BaseModel):
    subject: str
    body: str
    content: str  # raw "Subject: ...\n\n<body>" text
