# authcode/services/identity_service.py
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from authcode.models.user import Account
from authcode.models.verification_code import Purpose
from authcode.services.errors import AccountExistsError, IdentityActionError, StoreUnavailableError
from authcode.utils.password import hash_password, password_problems

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class SqlIdentityProvider:
    """Identity collaborator backed by the local ``accounts`` table."""

    def __init__(self, db: Session, clock):
        self.db = db
        self.clock = clock

    def _by_email(self, email: str) -> Account | None:
        return self.db.query(Account).filter(func.lower(Account.email) == normalize_email(email)).first()

    def resolve_subject(self, identifier: str, purpose: Purpose) -> str | None:
        """Map an email to an account id, or None if the journey does not apply to it."""
        purpose = Purpose(purpose)
        try:
            account = self._by_email(identifier)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Subject lookup failed: {e}")
            raise StoreUnavailableError() from e

        if account is None:
            return None
        if purpose is Purpose.PASSWORD_RESET:
            return account.id
        elif purpose is Purpose.SIGNUP_CONFIRMATION:
            return None if account.email_confirmed else account.id
        else:
            raise ValueError(f"Unhandled purpose: {purpose}")

    def contact_address(self, subject_id: str) -> str | None:
        account = self.db.get(Account, subject_id)
        return account.email if account else None

    def register(self, email: str, password: str) -> Account:
        account = Account(email=normalize_email(email), hashed_password=hash_password(password))
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise AccountExistsError() from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Account registration failed: {e}")
            raise StoreUnavailableError() from e
        self.db.refresh(account)
        logger.info(f"Account registered: {account.id}")
        return account

    def find_unconfirmed(self, email: str) -> Account | None:
        account = self._by_email(email)
        if account is not None and not account.email_confirmed:
            return account
        return None

    def replace_unconfirmed_password(self, email: str, password: str) -> Account | None:
        """Give an unconfirmed account the password of the latest signup, or return None."""
        account = self.find_unconfirmed(email)
        if account is None:
            return None
        account_id = account.id
        account.hashed_password = hash_password(password)
        account.updated_at = self.clock.now()
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Password replacement failed for {account_id}: {e}")
            raise StoreUnavailableError() from e
        logger.info(f"Unconfirmed account {account_id} signed up again; password replaced")
        return account

    def perform_gated_action(self, subject_id: str, purpose: Purpose, payload: dict | None = None) -> None:
        """Set a new password or mark the account confirmed."""
        purpose = Purpose(purpose)
        payload = payload or {}

        account = self.db.get(Account, subject_id)
        if account is None:
            raise IdentityActionError("Account no longer exists.")

        if purpose is Purpose.PASSWORD_RESET:
            new_password = payload.get("new_password")
            if not new_password:
                raise IdentityActionError("A new password is required.")
            problems = password_problems(new_password, payload.get("confirm_password"))
            if problems:
                raise IdentityActionError("; ".join(problems))
            account.hashed_password = hash_password(new_password)
        elif purpose is Purpose.SIGNUP_CONFIRMATION:
            account.email_confirmed = True
            account.confirmed_at = self.clock.now()
        else:
            raise ValueError(f"Unhandled purpose: {purpose}")

        account.updated_at = self.clock.now()
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Gated action {purpose.value} failed for {subject_id}: {e}")
            raise IdentityActionError() from e
        logger.info(f"Gated action {purpose.value} completed for {subject_id}")
