# authcode/dependencies.py
from datetime import timedelta

from fastapi import Depends
from sqlalchemy.orm import Session

from authcode.config import settings
from authcode.database import get_db
from authcode.services.challenge_store import ChallengeStore
from authcode.services.email_service import EmailDelivery, get_delivery
from authcode.services.flow_service import FlowController
from authcode.services.identity_service import SqlIdentityProvider
from authcode.services.verification_service import VerificationService
from authcode.utils.clock import SystemClock

_system_clock = SystemClock()


def get_clock():
    return _system_clock


def get_settings():
    return settings


def get_identity(db: Session = Depends(get_db), clock=Depends(get_clock)) -> SqlIdentityProvider:
    return SqlIdentityProvider(db, clock)


def get_flow_controller(
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
    delivery: EmailDelivery = Depends(get_delivery),
    identity: SqlIdentityProvider = Depends(get_identity),
    app_settings=Depends(get_settings),
) -> FlowController:
    store = ChallengeStore(
        db,
        clock,
        max_attempts=app_settings.MAX_ATTEMPTS,
        lock_timeout=app_settings.STORE_LOCK_TIMEOUT_SECONDS,
    )
    verification = VerificationService(
        store,
        delivery,
        identity,
        clock,
        code_ttl=timedelta(minutes=app_settings.CODE_TTL_MINUTES),
    )
    return FlowController(db, verification, identity, clock, app_settings, delivery=delivery)
