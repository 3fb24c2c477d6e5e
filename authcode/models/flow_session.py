from sqlalchemy import Column, String, DateTime
import enum
import uuid

from authcode.database import Base


class FlowStep(str, enum.Enum):
    COLLECT_IDENTIFIER = "collect_identifier"
    PRESENT_CHALLENGE = "present_challenge"
    PERFORM_ACTION = "perform_action"


class FlowSession(Base):
    __tablename__ = "flow_sessions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    purpose = Column(String(32), nullable=False)
    step = Column(String(32), nullable=False, default=FlowStep.COLLECT_IDENTIFIER.value)
    subject_id = Column(String, nullable=True)
    cooldown_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<FlowSession id={self.id} purpose={self.purpose} step={self.step}>"
