# authcode/services/challenge_store.py
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from authcode.models.verification_code import VerificationCode, Purpose
from authcode.services.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

# Fixed pool of per-key locks shared by every store instance in this process.
# Keys that hash to the same slot serialise against each other.
LOCK_POOL_SIZE = 256
_key_locks = tuple(threading.RLock() for _ in range(LOCK_POOL_SIZE))


def _lock_for(key: tuple[str, str]) -> threading.RLock:
    return _key_locks[hash(key) % LOCK_POOL_SIZE]


class ChallengeStore:
    """
    Persists at most one challenge per (subject_id, purpose).

    The database row is the source of truth for liveness. Writes that target
    a specific issuance pass its ``challenge_id`` so they become no-ops once
    the challenge has been superseded.
    """

    def __init__(self, db: Session, clock, max_attempts: int, lock_timeout: float = 5.0):
        self.db = db
        self.clock = clock
        self.max_attempts = max_attempts
        self.lock_timeout = lock_timeout

    # -------------------- LOCKING --------------------
    @contextmanager
    def locked(self, subject_id: str, purpose: Purpose):
        key = (subject_id, Purpose(purpose).value)
        lock = _lock_for(key)
        if not lock.acquire(timeout=self.lock_timeout):
            logger.error(f"[STORE] Timed out waiting for lock on {key}")
            raise StoreUnavailableError()
        try:
            yield
        finally:
            lock.release()

    # -------------------- QUERIES --------------------
    def _row(self, subject_id: str, purpose: Purpose, for_update: bool = False):
        query = self.db.query(VerificationCode).filter(
            VerificationCode.subject_id == subject_id,
            VerificationCode.purpose == Purpose(purpose).value,
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def _is_live(self, row: VerificationCode, now: datetime) -> bool:
        return (
            row.consumed_at is None
            and row.expires_at > now
            and row.attempt_count < self.max_attempts
        )

    def _fail(self, action: str, exc: Exception):
        self.db.rollback()
        logger.error(f"[STORE] {action} failed: {exc}")
        raise StoreUnavailableError() from exc

    # -------------------- OPERATIONS --------------------
    def put(self, subject_id: str, purpose: Purpose, code_hash: str, expires_at: datetime) -> str:
        """Create or supersede the challenge for this key; returns the new challenge_id."""
        purpose = Purpose(purpose)
        challenge_id = str(uuid.uuid4())
        now = self.clock.now()

        with self.locked(subject_id, purpose):
            try:
                row = self._row(subject_id, purpose, for_update=True)
                if row is None:
                    row = VerificationCode(subject_id=subject_id, purpose=purpose.value)
                    self.db.add(row)
                elif self._is_live(row, now):
                    logger.info(f"[STORE] Superseding live challenge for {subject_id} | {purpose.value}")

                row.challenge_id = challenge_id
                row.code_hash = code_hash
                row.issued_at = now
                row.expires_at = expires_at
                row.attempt_count = 0
                row.consumed_at = None
                self.db.commit()
            except IntegrityError:
                # A concurrent put inserted the row first; overwrite it instead
                self.db.rollback()
                try:
                    self.db.query(VerificationCode).filter(
                        VerificationCode.subject_id == subject_id,
                        VerificationCode.purpose == purpose.value,
                    ).update({
                        VerificationCode.challenge_id: challenge_id,
                        VerificationCode.code_hash: code_hash,
                        VerificationCode.issued_at: now,
                        VerificationCode.expires_at: expires_at,
                        VerificationCode.attempt_count: 0,
                        VerificationCode.consumed_at: None,
                    }, synchronize_session=False)
                    self.db.commit()
                except SQLAlchemyError as e:
                    self._fail("put", e)
            except SQLAlchemyError as e:
                self._fail("put", e)

        logger.info(f"[STORE] Challenge stored for {subject_id} | {purpose.value} | expires {expires_at.isoformat()}")
        return challenge_id

    def get(self, subject_id: str, purpose: Purpose) -> VerificationCode | None:
        """Return the live challenge, or None when absent, expired, consumed or exhausted."""
        try:
            row = self._row(subject_id, purpose)
        except SQLAlchemyError as e:
            self._fail("get", e)
        if row is None or not self._is_live(row, self.clock.now()):
            return None
        return row

    def record_failed_attempt(self, subject_id: str, purpose: Purpose, challenge_id: str | None = None) -> int:
        """Count a wrong submission; reaching max_attempts expires the challenge."""
        purpose = Purpose(purpose)
        now = self.clock.now()

        with self.locked(subject_id, purpose):
            try:
                row = self._row(subject_id, purpose, for_update=True)
                if row is None or not self._is_live(row, now):
                    return 0
                if challenge_id is not None and row.challenge_id != challenge_id:
                    return 0

                row.attempt_count = min(row.attempt_count + 1, self.max_attempts)
                if row.attempt_count >= self.max_attempts:
                    row.expires_at = now
                    logger.warning(f"[STORE] Attempts exhausted for {subject_id} | {purpose.value}")
                self.db.commit()
                return row.attempt_count
            except SQLAlchemyError as e:
                self._fail("record_failed_attempt", e)

    def consume(self, subject_id: str, purpose: Purpose, challenge_id: str | None = None) -> bool:
        """
        Mark the challenge consumed.

        Returns True if this call (or an earlier one) consumed the targeted
        issuance, False if there is nothing live to consume.
        """
        purpose = Purpose(purpose)
        now = self.clock.now()

        with self.locked(subject_id, purpose):
            try:
                row = self._row(subject_id, purpose, for_update=True)
                if row is None:
                    return False
                if challenge_id is not None and row.challenge_id != challenge_id:
                    return False
                if row.consumed_at is not None:
                    return True
                if not self._is_live(row, now):
                    return False

                row.consumed_at = now
                self.db.commit()
            except SQLAlchemyError as e:
                self._fail("consume", e)

        logger.info(f"[STORE] Challenge consumed for {subject_id} | {purpose.value}")
        return True

    def delete(self, subject_id: str, purpose: Purpose) -> None:
        purpose = Purpose(purpose)
        with self.locked(subject_id, purpose):
            try:
                self.db.query(VerificationCode).filter(
                    VerificationCode.subject_id == subject_id,
                    VerificationCode.purpose == purpose.value,
                ).delete(synchronize_session=False)
                self.db.commit()
            except SQLAlchemyError as e:
                self._fail("delete", e)
        logger.info(f"[STORE] Challenge deleted for {subject_id} | {purpose.value}")
