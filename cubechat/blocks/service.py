import logging

from cubechat.core.db import MessagingDb
from cubechat.core.errors import ValidationError

logger = logging.getLogger(__name__)


def _blocked_users(db: MessagingDb, user_id: str) -> list[str]:
    profile = db.get_profile(user_id) or {}
    return profile.get("blocked_users") or []


def block(db: MessagingDb, self_id: str, other_id: str) -> None:
    """Add ``other_id`` to the caller's own block list. Idempotent."""
    if self_id == other_id:
        raise ValidationError("You cannot block yourself.")

    db.add_blocked_user(self_id, other_id)
    logger.info(f"user_blocked blocker_id={self_id} blocked_id={other_id}")


def unblock(db: MessagingDb, self_id: str, other_id: str) -> None:
    """Remove ``other_id`` from the caller's own block list. Idempotent."""
    db.remove_blocked_user(self_id, other_id)
    logger.info(f"user_unblocked blocker_id={self_id} blocked_id={other_id}")


def has_blocked(db: MessagingDb, blocker_id: str, blocked_id: str) -> bool:
    return blocked_id in _blocked_users(db, blocker_id)


def is_blocked_either_direction(db: MessagingDb, user_a: str, user_b: str) -> bool:
    return has_blocked(db, user_a, user_b) or has_blocked(db, user_b, user_a)
