from cubechat.core.db import MessagingDb

UNKNOWN_USERNAME = "Unknown"


def get_display_profile(db: MessagingDb, user_id: str) -> dict:
    """Get a user's username and avatar for display, falling back to "Unknown"."""

    profile = db.get_profile(user_id) or {}

    return {
        "id": user_id,
        "username": profile.get("username") or UNKNOWN_USERNAME,
        "photo_url": profile.get("photo_url"),
    }
