"""Auth service — login, password management and the user ↔ member mapping.

Transaction policy: public functions call db.session.commit() on success.
"""
import logging

from sqlalchemy import func

from app.core.exceptions import AuthenticationError, NotFoundError, ValidationError
from app.models import db
from app.models.auth import User
from app.models.team import TeamMember
from app.services.jwt_service import generate_token
from app.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_TEMPORARY_PASSWORD_LENGTH = 6
MIN_PASSWORD_LENGTH = 8


def get_user_by_username(username: str) -> User | None:
    """Case-insensitive username lookup."""
    if not username:
        return None
    return User.query.filter(func.lower(User.username) == username.strip().lower()).first()


def login(username: str | None, password: str | None) -> dict:
    """Verify credentials and issue a token.

    Returns:
        {"token", "user": {"id", "username"}, "forcePasswordChange"}

    Raises:
        ValidationError: username or password missing.
        AuthenticationError: unknown user or wrong password.
    """
    if not username or not password:
        raise ValidationError("Username and password are required")

    user = get_user_by_username(username)
    if user is None or not verify_password(password, user.password):
        logger.warning("Failed login for username=%r", username)
        raise AuthenticationError("Invalid credentials")

    logger.info("User %s logged in", user.username)
    return {
        "token": generate_token(user),
        "user": {"id": user.id, "username": user.username},
        "forcePasswordChange": bool(user.force_password_change),
    }


def list_users() -> list[User]:
    return User.query.order_by(User.username).all()


def create_user(username: str, password: str, *, force_password_change: bool = True) -> User:
    if not username or not password:
        raise ValidationError("Username and password are required")
    if get_user_by_username(username):
        raise ValidationError("Username already exists")
    user = User(
        username=username.strip(),
        password=hash_password(password),
        force_password_change=force_password_change,
    )
    db.session.add(user)
    db.session.commit()
    return user


def reset_password(user_id, temporary_password: str | None) -> str:
    """Admin reset: set a temporary password and force a change at next login."""
    if not user_id or not temporary_password:
        raise ValidationError("User ID and temporary password are required")
    if len(temporary_password) < MIN_TEMPORARY_PASSWORD_LENGTH:
        raise ValidationError(
            f"Temporary password must be at least {MIN_TEMPORARY_PASSWORD_LENGTH} characters"
        )

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)

    user.password = hash_password(temporary_password)
    user.force_password_change = True
    db.session.commit()
    logger.info("Password reset for user %s", user.username)
    return f"Password reset for {user.username}. They will be required to change it on next login."


def change_password(user_id, current_password: str | None, new_password: str | None) -> None:
    if not current_password or not new_password:
        raise ValidationError("Current password and new password are required")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"New password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    if not verify_password(current_password, user.password):
        raise AuthenticationError("Current password is incorrect")

    user.password = hash_password(new_password)
    user.force_password_change = False
    db.session.commit()
    logger.info("User %s changed their password", user.username)


def resolve_member_for_user(user_id) -> TeamMember | None:
    """Team member whose name contains the user's username (case-insensitive)."""
    user = db.session.get(User, user_id) if user_id else None
    if user is None:
        return None
    pattern = f"%{user.username.lower()}%"
    return (
        TeamMember.query.filter(func.lower(TeamMember.name).like(pattern))
        .order_by(TeamMember.id)
        .first()
    )


def is_admin_user(current_user: dict | None) -> bool:
    return bool(current_user) and (current_user.get("username") or "").lower() == "admin"
