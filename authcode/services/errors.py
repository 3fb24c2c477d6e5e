# authcode/services/errors.py
"""
Error taxonomy for the verification-code lifecycle.

Routes translate these into HTTP responses; none of the messages carried
here may reveal whether an account exists or why a code was rejected.
"""


class VerificationError(Exception):
    """Base class for every error raised by the verification services."""

    default_message = "Something went wrong. Please try again."
    flow_id: str | None = None

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class StoreUnavailableError(VerificationError):
    """The challenge store could not complete an operation in bounded time."""


class DeliveryError(VerificationError):
    default_message = "We could not send the verification email. Please try again."


class SubjectNotResolvedError(VerificationError):
    default_message = "We could not proceed with this request."


class InvalidCodeFormatError(VerificationError):
    default_message = "Code must be 6 digits."


class CooldownActiveError(VerificationError):
    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Please wait {retry_after_seconds}s before requesting a new code.")


class FlowNotFoundError(VerificationError):
    default_message = "This request has expired. Please start again."


class FlowStateError(VerificationError):
    default_message = "This step is not available right now. Please start again."


class IdentityActionError(VerificationError):
    default_message = "We could not complete this action. Please start again."


class AccountExistsError(VerificationError):
    default_message = "An account with this email already exists."


class InvalidPasswordError(VerificationError):
    default_message = "Password does not meet the requirements."
