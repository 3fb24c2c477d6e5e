import re
from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8

PASSWORD_RULES = [
    (lambda p: len(p) >= MIN_PASSWORD_LENGTH, f"Password must be at least {MIN_PASSWORD_LENGTH} characters"),
    (lambda p: re.search(r"[a-z]", p) is not None, "Password must contain a lowercase letter"),
    (lambda p: re.search(r"[A-Z]", p) is not None, "Password must contain an uppercase letter"),
    (lambda p: re.search(r"[0-9]", p) is not None, "Password must contain a number"),
    (lambda p: re.search(r"[^a-zA-Z0-9]", p) is not None, "Password must contain a special character"),
]


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def password_problems(password: str, confirm_password: str | None = None) -> list[str]:
    """Return every policy violation; an empty list means the password is acceptable."""
    password = password or ""
    problems = [message for check, message in PASSWORD_RULES if not check(password)]
    if confirm_password is not None and password != confirm_password:
        problems.append("Passwords don't match")
    return problems
