"""
Account store: registration, login, profile changes and password recovery.
"""

import logging
import secrets
import smtplib
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from auth import hash_password, verify_password
from config import RESET_TOKEN_TTL_MINUTES
from database import unit_of_work, utc_now
from errors import Conflict, InvalidToken, NotFound, Unauthenticated, ValidationError
from models import PasswordResetToken, User
from notifications import Mailer

logger = logging.getLogger(__name__)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalars(select(User).where(User.email == email)).first()


def register_user(db: Session, name: str, email: str, password: str, role: str = "user") -> User:
    if get_user_by_email(db, email):
        raise Conflict("Email already registered")
    with unit_of_work(db):
        user = User(name=name, email=email, password_hash=hash_password(password), role=role)
        db.add(user)
    logger.info("Registered %s account %s", role, email)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        raise Unauthenticated("Invalid credentials")
    return user


def update_profile(db: Session, user: User, name: str, email: str) -> User:
    other = get_user_by_email(db, email)
    if other is not None and other.id != user.id:
        raise Conflict("Email already registered")
    with unit_of_work(db):
        user.name = name
        user.email = email
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    with unit_of_work(db):
        user.password_hash = hash_password(new_password)
    logger.info("Password changed for %s", user.email)


# --------------- Password recovery -----------------------------------------

RECOVERY_SUBJECT = "Password recovery"
RECOVERY_BODY = """Hello {name},

You asked to recover your password. Use this token to choose a new one:

    {token}

The token expires in {minutes} minutes. If you did not ask for this, ignore this email.
"""


def request_password_recovery(db: Session, email: str, mailer: Optional[Mailer]) -> str:
    """Mint a reset token for ``email`` and deliver it.

    The token is committed before delivery is attempted. Delivery is best
    effort: without a relay, or when sending fails, the token is written to the
    log so an operator can hand it over. Earlier tokens stay valid.
    """
    user = get_user_by_email(db, email)
    if user is None:
        raise NotFound("User not found")

    token = secrets.token_urlsafe(32)
    with unit_of_work(db):
        db.add(PasswordResetToken(
            user_id=user.id,
            token=token,
            expires_at=utc_now() + timedelta(minutes=RESET_TOKEN_TTL_MINUTES),
        ))

    if mailer is None:
        logger.warning("Recovery token for %s: %s (SMTP not configured)", email, token)
        return token

    body = RECOVERY_BODY.format(name=user.name, token=token, minutes=RESET_TOKEN_TTL_MINUTES)
    try:
        mailer.send(email, RECOVERY_SUBJECT, body)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Error sending recovery email to %s: %s", email, e)
        logger.warning("Recovery token for %s: %s (email delivery failed)", email, token)
    return token


def validate_reset_token(db: Session, token: str) -> PasswordResetToken:
    reset = db.scalars(select(PasswordResetToken).where(PasswordResetToken.token == token)).first()
    if reset is None:
        raise InvalidToken()
    if reset.expires_at < utc_now():
        with unit_of_work(db):
            db.delete(reset)
        raise InvalidToken()
    return reset


def reset_password(db: Session, token: str, new_password: str) -> User:
    """Set a new password with a recovery token; the token is single use."""
    reset = validate_reset_token(db, token)
    with unit_of_work(db):
        user = db.get(User, reset.user_id)
        user.password_hash = hash_password(new_password)
        db.delete(reset)
    logger.info("Password reset for %s", user.email)
    return user
