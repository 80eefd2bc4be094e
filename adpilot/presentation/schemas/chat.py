from __future__ import annotations
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

from adpilot.domain.entities.campaign import TopCampaign


class CampaignRef(BaseModel):
    id: str
    name: str
    status: str = "UNKNOWN"
    spend: float = 0.0
    revenue: float = 0.0
    roas: Optional[float] = 0.0
    purchases: int = 0

    def to_entity(self) -> TopCampaign:
        return TopCampaign(
            id=self.id,
            name=self.name,
            status=self.status,
            spend=self.spend,
            revenue=self.revenue,
            roas=self.roas,
            purchases=self.purchases,
        )


class ChatMessageOut(BaseModel):
    id: str
    role: str
    content: str
    created_at: str
    type: str = "text"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    implemented: bool = False
    feedback: Optional[str] = None
    client_id: Optional[str] = None
    sync_state: str = "confirmed"


class MessageListResponse(BaseModel):
    messages: List[ChatMessageOut]
    has_more: bool
    last_mentioned_campaign_id: Optional[str] = None


class SendMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=8000)
    mentioned_campaign: Optional[CampaignRef] = None
    # Known campaigns used to resolve "@Campaign_Name" tokens in the message
    campaigns: List[CampaignRef] = Field(default_factory=list)
    performance_view: Optional[str] = None

    @field_validator('message')
    @classmethod
    def validate_message(cls, v):
        if not v.strip():
            raise ValueError("Message is empty")
        return v


class SendMessageResponse(BaseModel):
    blocked: bool = False
    should_show_upgrade: bool = False
    user_message: Optional[ChatMessageOut] = None
    assistant_message: Optional[ChatMessageOut] = None
    error: Optional[str] = None


class FeedbackRequest(BaseModel):
    feedback: Literal["positive", "negative"]


class FeedbackResponse(BaseModel):
    id: str
    feedback: Optional[str] = None


class OperationOut(BaseModel):
    method: str
    endpoint: str
    params: Optional[Dict[str, Any]] = None


class OperationsPreviewResponse(BaseModel):
    hasExecutableOperations: bool
    operations: List[OperationOut] = Field(default_factory=list)


class OperationResultOut(BaseModel):
    operation: OperationOut
    success: bool
    error: Optional[str] = None
    entityName: Optional[str] = None


class ExecutionSummaryOut(BaseModel):
    succeeded: int = 0
    failed: int = 0


class ExecutionReportResponse(BaseModel):
    success: bool
    error: Optional[str] = None
    results: List[OperationResultOut] = Field(default_factory=list)
    summary: ExecutionSummaryOut = Field(default_factory=ExecutionSummaryOut)


class QuotaResponse(BaseModel):
    can_send: bool
    should_show_upgrade: bool
    user_message_count: int
    free_message_limit: int
    is_free_plan: bool
