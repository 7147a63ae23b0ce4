from pydantic import BaseModel, field_validator
from typing import Optional

from cubechat.core.errors import ValidationError
from cubechat.users.service import normalize_username


"""
profiles/{user_id}
"""


class PublicProfileResponseModel(BaseModel):
    id: str
    username: Optional[str] = None
    photo_url: Optional[str] = None


"""
profiles/me
"""


class SaveProfileModel(BaseModel):
    username: str
    photo_url: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, username: str) -> str:
        try:
            return normalize_username(username)
        except ValidationError as error:
            raise ValueError(error.detail)


class ProfileResponseModel(BaseModel):
    id: str
    username: Optional[str] = None
    photo_url: Optional[str] = None
    has_push_token: bool
    blocked_users: list[str]


"""
profiles/me/push-token
"""


class PushTokenModel(BaseModel):
    push_token: str


class PushTokenResponseModel(BaseModel):
    registered: bool


"""
DELETE profiles/me
"""


class DeleteAccountResponseModel(BaseModel):
    account_deleted: bool
