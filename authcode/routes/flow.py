# authcode/routes/flow.py
from fastapi import APIRouter, Depends, HTTPException, status
import logging

from authcode.dependencies import get_flow_controller
from authcode.schemas.flow import (
    StartFlowRequest,
    SubmitCodeRequest,
    ResendRequest,
    CompleteActionRequest,
    FlowResponse,
)
from authcode.services.errors import (
    CooldownActiveError,
    DeliveryError,
    FlowNotFoundError,
    FlowStateError,
    IdentityActionError,
    InvalidCodeFormatError,
    InvalidPasswordError,
    StoreUnavailableError,
    SubjectNotResolvedError,
    VerificationError,
)
from authcode.services.flow_service import FlowController

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/flows", tags=["Verification Flows"])

# Error class -> HTTP status; first match wins
ERROR_STATUS = [
    (InvalidCodeFormatError, status.HTTP_400_BAD_REQUEST),
    (InvalidPasswordError, status.HTTP_400_BAD_REQUEST),
    (SubjectNotResolvedError, status.HTTP_400_BAD_REQUEST),
    (IdentityActionError, status.HTTP_400_BAD_REQUEST),
    (FlowNotFoundError, status.HTTP_400_BAD_REQUEST),
    (FlowStateError, status.HTTP_409_CONFLICT),
    (CooldownActiveError, status.HTTP_429_TOO_MANY_REQUESTS),
    (DeliveryError, status.HTTP_502_BAD_GATEWAY),
    (StoreUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def to_http_exception(exc: VerificationError) -> HTTPException:
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    for error_class, code in ERROR_STATUS:
        if isinstance(exc, error_class):
            status_code = code
            break

    detail = {"message": exc.message}
    if exc.flow_id:
        detail["flow_id"] = exc.flow_id
    headers = None
    if isinstance(exc, CooldownActiveError):
        detail["retry_after_seconds"] = exc.retry_after_seconds
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


@router.post("/start", response_model=FlowResponse)
async def start_flow(request: StartFlowRequest, flows: FlowController = Depends(get_flow_controller)):
    """Submit an email to start a password reset or signup confirmation."""
    try:
        result = await flows.start_flow(request.purpose, request.email, flow_id=request.flow_id)
    except VerificationError as e:
        raise to_http_exception(e)
    return result


@router.post("/submit-code", response_model=FlowResponse)
async def submit_code(request: SubmitCodeRequest, flows: FlowController = Depends(get_flow_controller)):
    try:
        result = flows.submit_code(request.flow_id, request.code)
    except VerificationError as e:
        raise to_http_exception(e)

    if result.status != "success":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": result.message, "flow_id": result.flow_id, "step": result.step.value},
        )
    return result


@router.post("/resend", response_model=FlowResponse)
async def resend_code(request: ResendRequest, flows: FlowController = Depends(get_flow_controller)):
    """Send a fresh code; only honoured once the resend cooldown has elapsed."""
    try:
        result = await flows.resend(request.flow_id)
    except VerificationError as e:
        raise to_http_exception(e)
    return result


@router.post("/complete", response_model=FlowResponse)
async def complete_action(request: CompleteActionRequest, flows: FlowController = Depends(get_flow_controller)):
    try:
        result = await flows.complete_action(request.flow_id, request.payload())
    except VerificationError as e:
        raise to_http_exception(e)
    return result
