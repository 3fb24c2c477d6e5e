# authcode/schemas/__init__.py
from .flow import (
    StartFlowRequest,
    SubmitCodeRequest,
    ResendRequest,
    CompleteActionRequest,
    FlowResponse,
)
from .user import SignupRequest

__all__ = [
    "StartFlowRequest",
    "SubmitCodeRequest",
    "ResendRequest",
    "CompleteActionRequest",
    "FlowResponse",
    "SignupRequest",
]
