# app/schemas/segment.py
"""
Pydantic schemas for customer segments.

Rule trees are kept as plain dicts here; structural validation (fields,
operators, at least one leaf) belongs to the rule compiler so that the API
and the dispatch job reject the same trees.
"""

from typing import Optional, Dict, List, Any
from pydantic import BaseModel, Field, field_validator
from datetime import datetime


class SegmentCreate(BaseModel):
    """Schema for creating a segment."""

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    rules: Dict[str, Any] = Field(..., description="Rule tree: {combinator, rules: [...]}")
    tags: Optional[List[str]] = Field(default_factory=list)
    is_dynamic: bool = True

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Segment name cannot be blank")
        return v


class SegmentUpdate(BaseModel):
    """Schema for updating a segment. Changing rules triggers a stats refresh."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    rules: Optional[Dict[str, Any]] = None
    tags: Optional[List[str]] = None
    is_dynamic: Optional[bool] = None


class RulesRequest(BaseModel):
    """Body of the estimate and preview endpoints."""

    rules: Dict[str, Any]


class SpendTier(BaseModel):
    range: str
    count: int


class SegmentResponse(BaseModel):
    """Schema for segment response."""

    id: str
    owner_id: str
    name: str
    description: Optional[str]
    rules: Dict[str, Any]
    tags: Optional[List[str]]
    total_customers: int
    active_customers: int
    average_spend: float
    last_activity: Optional[datetime]
    spend_tiers: Optional[List[SpendTier]]
    stats_calculated_at: Optional[datetime]
    is_dynamic: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class EstimateResponse(BaseModel):
    count: int


class BucketCount(BaseModel):
    label: str
    count: int


class Demographics(BaseModel):
    gender: List[BucketCount]
    age_groups: List[BucketCount] = Field(..., alias="ageGroups")
    occupation: List[BucketCount]

    model_config = {"populate_by_name": True}


class SpendingStats(BaseModel):
    avg_spent: float = Field(..., alias="avgSpent")
    min_spent: float = Field(..., alias="minSpent")
    max_spent: float = Field(..., alias="maxSpent")
    total_spent: float = Field(..., alias="totalSpent")

    model_config = {"populate_by_name": True}


class ActivityStats(BaseModel):
    avg_orders: float = Field(..., alias="avgOrders")
    active_customers: int = Field(..., alias="activeCustomers")

    model_config = {"populate_by_name": True}


class SampleCustomer(BaseModel):
    id: str
    name: str
    email: str
    city: Optional[str]
    total_spent: float
    order_count: int
    last_purchase: Optional[datetime]

    class Config:
        from_attributes = True


class SegmentPreview(BaseModel):
    """Read-only audience breakdown for a rule tree."""

    total_count: int = Field(..., alias="totalCount")
    sample_customers: List[SampleCustomer] = Field(..., alias="sampleCustomers")
    demographics: Demographics
    city_distribution: List[BucketCount] = Field(..., alias="cityDistribution")
    spending_stats: SpendingStats = Field(..., alias="spendingStats")
    activity_stats: ActivityStats = Field(..., alias="activityStats")
    purchase_frequency: List[BucketCount] = Field(..., alias="purchaseFrequency")
    spend_tiers: List[SpendTier] = Field(..., alias="spendTiers")

    model_config = {"populate_by_name": True}
