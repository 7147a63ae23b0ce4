import logging

from fastapi import APIRouter, HTTPException, Depends

from cubechat.core.db import MessagingDb
from cubechat.core.dependencies import get_current_user_id, get_db
from cubechat.core.errors import MessagingError

from . import service
from .schemas import (
    PublicProfileResponseModel,
    SaveProfileModel,
    ProfileResponseModel,
    PushTokenModel,
    PushTokenResponseModel,
    DeleteAccountResponseModel,
)


logger = logging.getLogger(__name__)
router = APIRouter()


def _own_profile(profile: dict) -> dict:
    return {
        "id": profile["id"],
        "username": profile.get("username"),
        "photo_url": profile.get("photo_url"),
        "has_push_token": bool(profile.get("push_token")),
        "blocked_users": profile.get("blocked_users") or [],
    }


@router.get("/me", response_model=ProfileResponseModel, status_code=200)
def get_my_profile(
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Return the authenticated user's own profile, including their block list.

    **Errors**
    - 401: Invalid or expired token
    - 404: Profile has not been set up yet
    """
    return _own_profile(service.get_profile(db, user_id))


@router.put("/me", response_model=ProfileResponseModel, status_code=200)
def save_my_profile(
    data: SaveProfileModel,
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Create or update the authenticated user's profile.

    Used both by first-time profile setup and by later edits.

    **Input Fields**
    - **username**: 3–20 characters, letters, numbers and underscores, no
      leading or trailing underscore. Stored lower-cased. `admin`, `support`
      and `moderator` are reserved.
    - **photo_url**: Optional avatar URL.

    **Errors**
    - 401: Invalid or expired token
    - 409: Username already taken
    - 422: Invalid username
    """
    try:
        profile = service.save_profile(db, user_id, data.username, data.photo_url)
    except MessagingError:
        raise
    except Exception:
        logger.exception(f"profile_save_failed user_id={user_id}")
        raise HTTPException(status_code=500, detail="Failed to save profile.")

    return _own_profile(profile)


@router.put("/me/push-token", response_model=PushTokenResponseModel, status_code=200)
def register_push_token(
    data: PushTokenModel,
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Store the device push token used to notify the user of new messages.

    **Errors**
    - 404: Profile not found
    - 422: Empty token
    """
    service.register_push_token(db, user_id, data.push_token)
    return {"registered": True}


@router.delete("/me", response_model=DeleteAccountResponseModel, status_code=200)
def delete_my_account(
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Delete the authenticated user's profile record.

    Conversations and messages are kept so the other party's history stays
    intact; the deleted user shows up as "Unknown".

    **Errors**
    - 404: Profile not found
    """
    service.delete_account(db, user_id)
    return {"account_deleted": True}


@router.get("/{user_id}", response_model=PublicProfileResponseModel, status_code=200)
def get_public_profile(
    user_id: str,
    _: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Resolve a user id to their display profile (username and avatar).

    **Errors**
    - 404: No such user
    """
    profile = service.get_profile(db, user_id)
    return {
        "id": profile["id"],
        "username": profile.get("username"),
        "photo_url": profile.get("photo_url"),
    }
