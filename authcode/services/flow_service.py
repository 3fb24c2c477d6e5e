# authcode/services/flow_service.py
"""
Step state machine shared by the password-reset and signup-confirmation
journeys: collect_identifier -> present_challenge -> perform_action.

The flow is a server-side row keyed by a flow id the client passes back on
every call. Resend cooldown is re-checked here against the server clock.
"""
import logging
import math
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authcode.models.flow_session import FlowSession, FlowStep
from authcode.models.verification_code import Purpose
from authcode.services.errors import (
    CooldownActiveError,
    FlowNotFoundError,
    FlowStateError,
    IdentityActionError,
    InvalidCodeFormatError,
    InvalidPasswordError,
    StoreUnavailableError,
    SubjectNotResolvedError,
    VerificationError,
)
from authcode.utils.otp import is_well_formed_code
from authcode.utils.password import password_problems

logger = logging.getLogger(__name__)

SIGNIN_PATH = "/signin"


@dataclass
class FlowResult:
    flow_id: str
    step: FlowStep
    status: str
    message: str
    next_steps: str
    retry_after_seconds: int | None = None
    redirect_to: str | None = None


def validate_code_shape(code) -> str:
    value = code.strip() if isinstance(code, str) else code
    if not is_well_formed_code(value):
        raise InvalidCodeFormatError()
    return value


class FlowController:
    def __init__(self, db: Session, verification, identity, clock, settings, delivery=None):
        self.db = db
        self.verification = verification
        self.identity = identity
        self.clock = clock
        self.cooldown = timedelta(seconds=settings.RESEND_COOLDOWN_SECONDS)
        self.flow_ttl = timedelta(minutes=settings.FLOW_TTL_MINUTES)
        self.delivery = delivery

    # -------------------- PERSISTENCE --------------------
    def _save(self, flow: FlowSession):
        try:
            self.db.add(flow)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[FLOW] Could not save flow {flow.id}: {e}")
            raise StoreUnavailableError() from e

    def _load(self, flow_id: str) -> FlowSession:
        try:
            flow = self.db.get(FlowSession, flow_id) if flow_id else None
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[FLOW] Could not load flow {flow_id}: {e}")
            raise StoreUnavailableError() from e
        if flow is None or flow.completed_at is not None or flow.expires_at <= self.clock.now():
            raise FlowNotFoundError()
        return flow

    def _require_step(self, flow: FlowSession, step: FlowStep):
        if FlowStep(flow.step) is not step:
            logger.info(f"[FLOW] {flow.id} is at {flow.step}, expected {step.value}")
            raise FlowStateError()

    def _reset(self, flow: FlowSession):
        flow.step = FlowStep.COLLECT_IDENTIFIER.value
        flow.subject_id = None
        flow.cooldown_until = None

    def _claim_cooldown(self, flow: FlowSession):
        """
        Atomically move cooldown_until forward if it has elapsed.

        Returns (previous, claimed) for ``_release_cooldown``. Raises
        CooldownActiveError when another request holds the window.
        """
        now = self.clock.now()
        previous = flow.cooldown_until
        claimed = now + self.cooldown
        try:
            updated = (
                self.db.query(FlowSession)
                .filter(
                    FlowSession.id == flow.id,
                    or_(FlowSession.cooldown_until.is_(None), FlowSession.cooldown_until <= now),
                )
                .update({FlowSession.cooldown_until: claimed}, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[FLOW] Could not claim cooldown for {flow.id}: {e}")
            raise StoreUnavailableError() from e

        if updated == 0:
            self.db.refresh(flow)
            error = CooldownActiveError(self._seconds_until(flow.cooldown_until))
            error.flow_id = flow.id
            raise error
        return previous, claimed

    def _release_cooldown(self, flow: FlowSession, previous, claimed):
        try:
            self.db.query(FlowSession).filter(
                FlowSession.id == flow.id,
                FlowSession.cooldown_until == claimed,
            ).update({FlowSession.cooldown_until: previous}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[FLOW] Could not release cooldown for {flow.id}: {e}")

    def _result(self, flow: FlowSession, status: str, message: str, **extra) -> FlowResult:
        step = FlowStep(flow.step)
        if step is FlowStep.COLLECT_IDENTIFIER:
            next_steps = "submit_identifier"
        elif step is FlowStep.PRESENT_CHALLENGE:
            next_steps = "submit_code"
        elif step is FlowStep.PERFORM_ACTION:
            next_steps = "signin" if flow.completed_at else "complete_action"
        else:
            raise ValueError(f"Unhandled step: {step}")
        return FlowResult(flow_id=flow.id, step=step, status=status, message=message, next_steps=next_steps, **extra)

    # -------------------- FLOW API --------------------
    async def start_flow(self, purpose: Purpose, identifier: str, flow_id: str | None = None) -> FlowResult:
        """
        CollectIdentifier: resolve the subject, issue a challenge, move to
        PresentChallenge. Passing the id of a flow that is back at
        collect_identifier retries within that flow.
        """
        purpose = Purpose(purpose)
        if flow_id:
            flow = self._load(flow_id)
            self._require_step(flow, FlowStep.COLLECT_IDENTIFIER)
            if Purpose(flow.purpose) is not purpose:
                raise FlowStateError()
        else:
            now = self.clock.now()
            flow = FlowSession(
                purpose=purpose.value,
                step=FlowStep.COLLECT_IDENTIFIER.value,
                created_at=now,
                expires_at=now + self.flow_ttl,
            )
            self._save(flow)

        subject_id = self.identity.resolve_subject(identifier, purpose)
        if subject_id is None:
            logger.info(f"[FLOW] {flow.id} could not resolve identifier for {purpose.value}")
            error = SubjectNotResolvedError()
            error.flow_id = flow.id
            raise error

        previous, claimed = self._claim_cooldown(flow)
        try:
            await self.verification.issue(subject_id, purpose)
        except VerificationError as e:
            # The flow stays in collect_identifier; a fresh issue is required
            self._release_cooldown(flow, previous, claimed)
            e.flow_id = flow.id
            raise

        flow.subject_id = subject_id
        flow.step = FlowStep.PRESENT_CHALLENGE.value
        self._save(flow)
        logger.info(f"[FLOW] {flow.id} moved to {flow.step}")
        return self._result(
            flow, "otp_required", "A 6-digit verification code has been sent to your email.",
            retry_after_seconds=self._seconds_until(flow.cooldown_until),
        )

    def submit_code(self, flow_id: str, code) -> FlowResult:
        """PresentChallenge: validate the code and move to PerformAction on success."""
        flow = self._load(flow_id)
        self._require_step(flow, FlowStep.PRESENT_CHALLENGE)
        code = validate_code_shape(code)

        result = self.verification.validate(flow.subject_id, Purpose(flow.purpose), code)
        if not result.accepted:
            return self._result(flow, "invalid", "Invalid or expired verification code")

        flow.step = FlowStep.PERFORM_ACTION.value
        flow.cooldown_until = None
        self._save(flow)
        logger.info(f"[FLOW] {flow_id} moved to {flow.step}")
        return self._result(flow, "success", "Code verified successfully.")

    async def resend(self, flow_id: str) -> FlowResult:
        """Re-issue the challenge once the server-side cooldown has elapsed."""
        flow = self._load(flow_id)
        self._require_step(flow, FlowStep.PRESENT_CHALLENGE)

        previous, claimed = self._claim_cooldown(flow)
        try:
            await self.verification.resend(flow.subject_id, Purpose(flow.purpose))
        except VerificationError as e:
            self._release_cooldown(flow, previous, claimed)
            e.flow_id = flow_id
            raise

        self.db.refresh(flow)
        logger.info(f"[FLOW] {flow_id} resent code")
        return self._result(
            flow, "otp_required", "A new verification code has been sent to your email.",
            retry_after_seconds=self._seconds_until(flow.cooldown_until),
        )

    async def complete_action(self, flow_id: str, payload: dict | None = None) -> FlowResult:
        """PerformAction: run the gated mutation, clean up, end the flow."""
        flow = self._load(flow_id)
        self._require_step(flow, FlowStep.PERFORM_ACTION)
        purpose = Purpose(flow.purpose)
        payload = payload or {}

        if purpose is Purpose.PASSWORD_RESET:
            problems = password_problems(payload.get("new_password") or "", payload.get("confirm_password"))
            if problems:
                raise InvalidPasswordError("; ".join(problems))
            message = "Your password has been reset successfully."
        elif purpose is Purpose.SIGNUP_CONFIRMATION:
            message = "Your account has been confirmed."
        else:
            raise ValueError(f"Unhandled purpose: {purpose}")

        subject_id = flow.subject_id
        try:
            self.identity.perform_gated_action(subject_id, purpose, payload)
        except IdentityActionError as e:
            # The code is already consumed; a new challenge is needed
            self._reset(flow)
            self._save(flow)
            logger.warning(f"[FLOW] {flow_id} gated action failed; flow restarted")
            e.flow_id = flow.id
            raise

        try:
            self.verification.delete(subject_id, purpose)
        except StoreUnavailableError:
            # The challenge is consumed and will expire on its own
            logger.warning(f"[FLOW] {flow_id} could not delete challenge for {subject_id}")

        flow.completed_at = self.clock.now()
        self._save(flow)

        if purpose is Purpose.SIGNUP_CONFIRMATION and self.delivery is not None:
            address = self.identity.contact_address(subject_id)
            if address:
                await self.delivery.send_welcome(address)

        logger.info(f"[FLOW] {flow_id} completed {purpose.value}")
        return self._result(flow, "success", message, redirect_to=SIGNIN_PATH)

    def _seconds_until(self, moment) -> int:
        return max(0, math.ceil((moment - self.clock.now()).total_seconds()))




def purge_stale_flows(db: Session, now) -> int:
    """Delete completed and expired flow sessions; returns how many were removed."""
    try:
        removed = db.query(FlowSession).filter(
            or_(FlowSession.completed_at.isnot(None), FlowSession.expires_at <= now)
        ).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[FLOW] Could not purge stale flows: {e}")
        raise StoreUnavailableError() from e
    logger.info(f"[FLOW] Purged {removed} stale flow sessions")
    return removed
