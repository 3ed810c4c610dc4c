"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. The `*Out` models are public projections:
they never carry password hashes, emails or verifier lists.
"""

from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from datetime import datetime


class AccountCreate(BaseModel):
    """Payload for account registration."""
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=1)
    description: Optional[str] = None
    roles: List[str] = Field(default_factory=lambda: ["STUDENT"])
    affiliation_id: Optional[int] = None


class AffiliationOut(BaseModel):
    id: int
    affiliation_type: str
    university_name: Optional[str] = None


class AccountOut(BaseModel):
    """Public projection of an `Account`."""
    id: int
    first_name: str
    last_name: str
    description: Optional[str] = None
    roles: List[str]
    affiliation: Optional[AffiliationOut] = None
    is_verified: bool
    verified_on: Optional[datetime] = None
    enabled: bool
    created_at: datetime


class MessageDraft(BaseModel):
    """Inbound message as sent by a client over either transport."""
    sender_id: int
    receiver_id: int
    content: str
    chat_id: Optional[int] = None
    timestamp: Optional[datetime] = None


class MessageOut(BaseModel):
    """Canonical persisted form of a message, returned and broadcast as-is."""
    id: int
    sender_id: int
    receiver_id: int
    chat_id: Optional[int] = None
    content: str
    timestamp: datetime
    is_read: bool = False


class ChatCreate(BaseModel):
    """Request body for creating a chat session."""
    chat_name: Optional[str] = None
    participant_ids: List[int] = Field(default_factory=list)


class ChatOut(BaseModel):
    id: int
    chat_name: Optional[str] = None
    participant_ids: List[int]
    created_at: datetime


class CourseCategoryIn(BaseModel):
    category_name: str


class CourseCategoryOut(BaseModel):
    id: int
    category_name: str
    created_on: datetime
