from pydantic import BaseModel


# block / unblock
class BlockResponseModel(BaseModel):
    blocked_id: str
    blocked: bool


# block status
class BlockStatusResponseModel(BaseModel):
    blocked_by_me: bool
    either_direction: bool
