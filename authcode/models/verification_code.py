from sqlalchemy import Column, String, DateTime, Integer, UniqueConstraint
import enum
import uuid

from authcode.database import Base


class Purpose(str, enum.Enum):
    PASSWORD_RESET = "password_reset"
    SIGNUP_CONFIRMATION = "signup_confirmation"


class VerificationCode(Base):
    """One logical challenge per (subject_id, purpose).

    Re-issuing rewrites the row in place with a fresh ``challenge_id``; the
    plaintext code is never stored, only ``code_hash``.
    """

    __tablename__ = "verification_codes"
    __table_args__ = (
        UniqueConstraint("subject_id", "purpose", name="uq_verification_codes_subject_purpose"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    challenge_id = Column(String(36), nullable=False, default=lambda: str(uuid.uuid4()))
    subject_id = Column(String, nullable=False, index=True)
    purpose = Column(String(32), nullable=False)
    code_hash = Column(String(128), nullable=False)
    issued_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    attempt_count = Column(Integer, nullable=False, default=0)
    consumed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<VerificationCode subject={self.subject_id} purpose={self.purpose}>"
