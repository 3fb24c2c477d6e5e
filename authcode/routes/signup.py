# authcode/routes/signup.py
from fastapi import APIRouter, Depends, HTTPException, status

from authcode.dependencies import get_flow_controller, get_identity
from authcode.models.verification_code import Purpose
from authcode.routes.flow import to_http_exception
from authcode.schemas.flow import FlowResponse
from authcode.schemas.user import SignupRequest
from authcode.services.errors import AccountExistsError, VerificationError
from authcode.services.flow_service import FlowController
from authcode.services.identity_service import SqlIdentityProvider
from authcode.utils.password import password_problems

router = APIRouter(prefix="/auth", tags=["Signup"])


@router.post("/signup", response_model=FlowResponse)
async def signup(
    data: SignupRequest,
    identity: SqlIdentityProvider = Depends(get_identity),
    flows: FlowController = Depends(get_flow_controller),
):
    """Create an unconfirmed account and send its confirmation code."""
    problems = password_problems(data.password, data.confirm_password)
    if problems:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "; ".join(problems)},
        )

    try:
        try:
            identity.register(data.email, data.password)
        except AccountExistsError:
            # The latest signup owns an account nobody has confirmed yet
            if identity.replace_unconfirmed_password(data.email, data.password) is None:
                raise

        result = await flows.start_flow(Purpose.SIGNUP_CONFIRMATION, data.email)
    except AccountExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail={"message": e.message})
    except VerificationError as e:
        raise to_http_exception(e)

    return result
