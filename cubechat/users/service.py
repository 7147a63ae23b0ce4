import re
import logging

from cubechat.core.db import MessagingDb
from cubechat.core.errors import AlreadyExists, NotFound, ValidationError

logger = logging.getLogger(__name__)

# 3-20 letters, digits or underscores, no leading or trailing underscore
USERNAME_PATTERN = re.compile(r"^(?!_)[a-z0-9_]{3,20}(?<!_)$")
RESERVED_USERNAMES = frozenset({"admin", "support", "moderator"})


def normalize_username(raw: str) -> str:
    """Trim and lower-case a username, raising ValidationError if not allowed."""
    username = (raw or "").strip().lower()

    if not username:
        raise ValidationError("Username cannot be empty.")

    if not USERNAME_PATTERN.match(username):
        raise ValidationError(
            "Username must be 3-20 characters and contain only letters, numbers, "
            "and underscores (no leading or trailing underscores)."
        )

    if username in RESERVED_USERNAMES:
        raise ValidationError("This username is not allowed. Please choose another.")

    return username


def get_profile(db: MessagingDb, user_id: str) -> dict:
    profile = db.get_profile(user_id)
    if profile is None:
        raise NotFound("User not found.")
    return profile


def save_profile(
    db: MessagingDb, user_id: str, username: str, photo_url: str | None = None
) -> dict:
    """Create or update the caller's profile (profile setup and edit)."""
    username = normalize_username(username)

    owner_id = db.find_profile_id_by_username(username)
    if owner_id is not None and owner_id != user_id:
        raise AlreadyExists("Username is already taken. Please choose another.")

    profile = db.upsert_profile(user_id, {"username": username, "photo_url": photo_url})
    logger.info(f"profile_saved user_id={user_id} username={username}")
    return profile


def register_push_token(db: MessagingDb, user_id: str, push_token: str) -> dict:
    push_token = (push_token or "").strip()
    if not push_token:
        raise ValidationError("Push token cannot be empty.")

    get_profile(db, user_id)
    profile = db.upsert_profile(user_id, {"push_token": push_token})
    logger.info(f"push_token_registered user_id={user_id}")
    return profile


def delete_account(db: MessagingDb, user_id: str) -> None:
    if not db.delete_profile(user_id):
        raise NotFound("User not found.")
    logger.info(f"account_deleted user_id={user_id}")
