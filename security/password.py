from passlib.context import CryptContext

from core.config import settings

# bcrypt ignores anything past 72 bytes
_MAX_PASSWORD_LENGTH = 72

_pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
    bcrypt__min_rounds=settings.BCRYPT_ROUNDS,
)


def _truncate(password: str) -> str:
    return password[:_MAX_PASSWORD_LENGTH]


def hash_password(password: str) -> str:
    return _pwd_context.hash(_truncate(password))


def verify_password(password: str, password_hash: str) -> bool:
    return _pwd_context.verify(_truncate(password), password_hash)


def verify_and_rehash(password: str, password_hash: str) -> tuple[bool, str | None]:
    """
    Check a password and return a fresh hash when the stored one uses
    outdated parameters (e.g. BCRYPT_ROUNDS was raised since it was made).
    """
    return _pwd_context.verify_and_update(_truncate(password), password_hash)
