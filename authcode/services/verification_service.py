# authcode/services/verification_service.py
"""
Issuance and validation of one-time verification codes.

``validate`` answers ``accepted=False`` for a missing, expired, consumed
or exhausted challenge exactly as it does for a wrong code. Hashes are
compared in constant time.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from authcode.models.verification_code import Purpose
from authcode.services.challenge_store import ChallengeStore
from authcode.services.errors import DeliveryError, SubjectNotResolvedError
from authcode.utils.otp import codes_match, generate_otp, hash_code

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssueResult:
    challenge_id: str
    expires_at: datetime


@dataclass(frozen=True)
class ValidationResult:
    accepted: bool


class VerificationService:
    def __init__(self, store: ChallengeStore, delivery, identity, clock, code_ttl: timedelta):
        self.store = store
        self.delivery = delivery
        self.identity = identity
        self.clock = clock
        self.code_ttl = code_ttl

    async def issue(self, subject_id: str, purpose: Purpose) -> IssueResult:
        """
        Generate, hash and persist a new code, then hand it to delivery.

        Store failures propagate before anything is sent. A DeliveryError is
        raised after the challenge has been persisted; it stays live.
        """
        purpose = Purpose(purpose)
        address = self.identity.contact_address(subject_id)
        if not address:
            raise SubjectNotResolvedError()

        code = generate_otp()
        expires_at = self.clock.now() + self.code_ttl
        challenge_id = self.store.put(subject_id, purpose, hash_code(code), expires_at)

        try:
            await self.delivery.send(address, purpose, code)
        except DeliveryError:
            logger.warning(f"[OTP] Delivery failed for {subject_id} | {purpose.value}; challenge left live")
            raise
        except Exception as e:
            logger.error(f"[OTP] Unexpected delivery failure for {subject_id} | {purpose.value}: {e}")
            raise DeliveryError() from e

        logger.info(f"[OTP] Issued {purpose.value} code for {subject_id}")
        return IssueResult(challenge_id=challenge_id, expires_at=expires_at)

    async def resend(self, subject_id: str, purpose: Purpose) -> IssueResult:
        # Cooldown is enforced by the flow controller, not here
        return await self.issue(subject_id, purpose)

    def validate(self, subject_id: str, purpose: Purpose, submitted_code: str) -> ValidationResult:
        purpose = Purpose(purpose)

        with self.store.locked(subject_id, purpose):
            challenge = self.store.get(subject_id, purpose)
            if challenge is None:
                logger.info(f"[OTP] No live {purpose.value} challenge for {subject_id}")
                return ValidationResult(accepted=False)

            challenge_id = challenge.challenge_id
            if codes_match(submitted_code, challenge.code_hash):
                accepted = self.store.consume(subject_id, purpose, challenge_id=challenge_id)
                logger.info(f"[OTP] {purpose.value} code accepted for {subject_id}: {accepted}")
                return ValidationResult(accepted=accepted)

            attempts = self.store.record_failed_attempt(subject_id, purpose, challenge_id=challenge_id)
            logger.info(f"[OTP] Wrong {purpose.value} code for {subject_id} (attempt {attempts})")
            return ValidationResult(accepted=False)

    def delete(self, subject_id: str, purpose: Purpose) -> None:
        self.store.delete(subject_id, purpose)
