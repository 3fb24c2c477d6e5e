# authcode/utils/otp.py
import hashlib
import hmac
import re
import secrets

from authcode.config import settings
from authcode.models.verification_code import Purpose

CODE_LENGTH = 6
_CODE_RE = re.compile(r"^[0-9]{6}$")


# -------------------- PURPOSE NORMALIZER --------------------
def normalize_purpose(purpose) -> Purpose:
    """
    Map loose purpose strings onto the Purpose enum.
    Raises ValueError for anything that is not a known purpose.
    """
    if isinstance(purpose, Purpose):
        return purpose

    value = str(purpose).lower().strip().replace("-", "_")

    mapping = {
        "reset": Purpose.PASSWORD_RESET,
        "password_reset": Purpose.PASSWORD_RESET,
        "forgot_password": Purpose.PASSWORD_RESET,
        "signup": Purpose.SIGNUP_CONFIRMATION,
        "signup_confirmation": Purpose.SIGNUP_CONFIRMATION,
        "confirm_signup": Purpose.SIGNUP_CONFIRMATION,
    }

    if value not in mapping:
        raise ValueError(f"Unknown verification purpose: {purpose!r}")
    return mapping[value]


# -------------------- OTP GENERATOR --------------------
def generate_otp(length: int = CODE_LENGTH) -> str:
    """Generate a numeric OTP of given length using the OS CSPRNG."""
    return str(secrets.randbelow(10 ** length)).zfill(length)


def is_well_formed_code(value) -> bool:
    return isinstance(value, str) and bool(_CODE_RE.fullmatch(value))


# -------------------- HASHING --------------------
def _digest(code: str, salt: str) -> str:
    key = settings.SECRET_KEY.encode("utf-8")
    return hmac.new(key, f"{salt}:{code}".encode("utf-8"), hashlib.sha256).hexdigest()


def hash_code(code: str) -> str:
    """Salted, peppered one-way digest stored as ``salt$hexdigest``."""
    salt = secrets.token_hex(16)
    return f"{salt}${_digest(code, salt)}"


def codes_match(code: str, code_hash: str) -> bool:
    """Constant-time comparison of a submitted code against a stored hash."""
    salt, sep, expected = code_hash.partition("$")
    if not sep:
        return False
    candidate = _digest(code if isinstance(code, str) else "", salt)
    return hmac.compare_digest(candidate, expected)
