from typing import Optional
from pydantic import BaseModel, EmailStr, field_validator

from authcode.models.flow_session import FlowStep
from authcode.models.verification_code import Purpose
from authcode.utils.otp import normalize_purpose


class StartFlowRequest(BaseModel):
    purpose: Purpose
    email: EmailStr
    flow_id: Optional[str] = None

    @field_validator("purpose", mode="before")
    @classmethod
    def _normalize_purpose(cls, value):
        return normalize_purpose(value)

    class Config:
        title = "StartFlowRequest"


class SubmitCodeRequest(BaseModel):
    flow_id: str
    # Shape is checked by the flow controller so it can answer with a local error
    code: str


class ResendRequest(BaseModel):
    flow_id: str


class CompleteActionRequest(BaseModel):
    flow_id: str
    new_password: Optional[str] = None
    confirm_password: Optional[str] = None

    def payload(self) -> dict:
        return self.model_dump(exclude={"flow_id"}, exclude_none=True)


class FlowResponse(BaseModel):
    status: str
    message: str
    flow_id: str
    step: FlowStep
    next_steps: str
    retry_after_seconds: Optional[int] = None
    redirect_to: Optional[str] = None

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "status": "otp_required",
                "message": "A 6-digit verification code has been sent to your email.",
                "flow_id": "123e4567-e89b-12d3-a456-426614174000",
                "step": "present_challenge",
                "next_steps": "submit_code",
                "retry_after_seconds": 30,
            }
        }
