from fastapi import APIRouter, Depends

from cubechat.core.db import MessagingDb
from cubechat.core.dependencies import get_current_user_id, get_db

from . import service
from .schemas import BlockResponseModel, BlockStatusResponseModel


router = APIRouter()


@router.post("/{other_user_id}", response_model=BlockResponseModel, status_code=200)
def block_user(
    other_user_id: str,
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Block another user.

    Adds `other_user_id` to the caller's own block list. Blocking an already
    blocked user is a no-op. While either user blocks the other, neither can
    send messages in their conversation; existing messages stay visible.

    **Errors**
    - 404: Caller has no profile
    - 422: Attempt to block yourself
    """
    service.block(db, user_id, other_user_id)
    return {"blocked_id": other_user_id, "blocked": True}


@router.delete("/{other_user_id}", response_model=BlockResponseModel, status_code=200)
def unblock_user(
    other_user_id: str,
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Unblock a user. Only the caller's own block list changes, so the other
    user's block (if any) still applies.

    **Errors**
    - 404: Caller has no profile
    """
    service.unblock(db, user_id, other_user_id)
    return {"blocked_id": other_user_id, "blocked": False}


@router.get("/{other_user_id}", response_model=BlockStatusResponseModel, status_code=200)
def get_block_status(
    other_user_id: str,
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Block state between the caller and another user.

    **Returns**
    - `blocked_by_me`: The caller blocked `other_user_id`
    - `either_direction`: Sending is disabled between the two users
    """
    return {
        "blocked_by_me": service.has_blocked(db, user_id, other_user_id),
        "either_direction": service.is_blocked_either_direction(
            db, user_id, other_user_id
        ),
    }
