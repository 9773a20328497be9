from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class SubscribeRequest(BaseModel):
    email: EmailStr


class BroadcastRequest(BaseModel):
    subject: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    preview_text: Optional[str] = Field(default=None, alias="previewText")

    class Config:
        populate_by_name = True


class BroadcastResult(BaseModel):
    sent: int
    failed: int
    total: int


class SubscriberCount(BaseModel):
    count: int
