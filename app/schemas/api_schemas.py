"""
Pydantic schemas for API request validation
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator

from app.services.moderation.results import ContentType


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ReviewDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATED = "escalated"


class ResolutionAction(str, Enum):
    WARN_USER = "warn_user"
    SUSPEND_USER = "suspend_user"
    BAN_USER = "ban_user"
    REMOVE_CONTENT = "remove_content"
    DISMISS = "dismiss"


class ModerateContentRequest(BaseModel):
    """Schema for content moderation requests"""
    content_id: str = Field(..., min_length=1, max_length=36)
    content_type: ContentType
    user_id: str = Field(..., min_length=1, max_length=36)
    content: Optional[str] = Field(default=None, max_length=100000)
    image_urls: List[str] = Field(default_factory=list, max_length=20)
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="Optional metadata")

    @validator('image_urls', always=True)
    def validate_has_something_to_moderate(cls, v, values):
        if not v and not (values.get('content') or '').strip():
            raise ValueError('Either content or image_urls is required')
        return v

    @validator('metadata')
    def validate_metadata(cls, v):
        if v is not None:
            for key, value in v.items():
                if len(key) > 50:
                    raise ValueError('Metadata keys must be strings with max length 50')
                if isinstance(value, str) and len(value) > 1000:
                    raise ValueError('Metadata string values must be max 1000 characters')
        return v

    def to_content_dict(self):
        return {
            'content_id': self.content_id,
            'content_type': self.content_type.value,
            'user_id': self.user_id,
            'content': self.content,
            'image_urls': self.image_urls,
            'metadata': self.metadata or {},
        }

    class Config:
        extra = "forbid"
        json_schema_extra = {
            "example": {
                "content_id": "p1",
                "content_type": "post",
                "user_id": "u1",
                "content": "Tried a Padron cigar tonight, rich aroma and smooth draw."
            }
        }


class BulkModerateRequest(BaseModel):
    items: List[ModerateContentRequest] = Field(..., min_length=1, max_length=100)


class AppealRequest(BaseModel):
    content_id: str = Field(..., min_length=1, max_length=36)
    content_type: ContentType
    reason: str = Field(..., min_length=1, max_length=2000)

    @validator('reason')
    def validate_reason(cls, v):
        if not v.strip():
            raise ValueError('Reason cannot be empty or only whitespace')
        return v.strip()


class ReportRequest(BaseModel):
    """Report payload; type and target rules are enforced by the reporting service"""
    report_type: str = Field(..., max_length=30)
    reason: str = Field(..., max_length=2000)
    reported_user_id: Optional[str] = Field(default=None, max_length=36)
    content_id: Optional[str] = Field(default=None, max_length=36)
    content_type: Optional[ContentType] = None
    evidence: List[str] = Field(default_factory=list, max_length=20)


class ResolveReportRequest(BaseModel):
    resolution: str = Field(..., min_length=1, max_length=2000)
    action: Optional[ResolutionAction] = None


class ListFilterParams(BaseModel):
    status: Optional[str] = Field(default="pending", max_length=20)
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)

    @validator('status')
    def validate_status(cls, v):
        # 'all' lifts the status filter
        return None if v == 'all' else v


class ReportListParams(ListFilterParams):
    priority: Optional[Priority] = None
    report_type: Optional[str] = Field(default=None, max_length=30)


class QueueListParams(ListFilterParams):
    priority: Optional[Priority] = None
    severity: Optional[str] = Field(default=None, max_length=10)
    assigned_to: Optional[str] = Field(default=None, max_length=36)


class AssignRequest(BaseModel):
    """reviewer_id defaults to the caller; auto hands the item to the least busy moderator"""
    reviewer_id: Optional[str] = Field(default=None, max_length=36)
    auto: bool = False


class ReviewRequest(BaseModel):
    decision: ReviewDecision
    review_notes: Optional[str] = Field(default=None, max_length=2000)
    escalation_reason: Optional[str] = Field(default=None, max_length=2000)


class RuleToggleRequest(BaseModel):
    is_active: bool


class StatisticsParams(BaseModel):
    """Unknown ranges fall back to 24h rather than failing"""
    time_range: str = Field(default="24h", max_length=10)
