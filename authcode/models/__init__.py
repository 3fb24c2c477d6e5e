# authcode/models/__init__.py

from .user import Account
from .verification_code import VerificationCode, Purpose
from .flow_session import FlowSession, FlowStep

__all__ = ["Account", "VerificationCode", "Purpose", "FlowSession", "FlowStep"]
