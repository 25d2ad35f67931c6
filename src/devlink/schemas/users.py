"""User record schema definitions.

This module defines the Pydantic models stored by the user directory. A
``UserRecord`` embeds both sides of the social graph: the users it follows
and the users following it, newest first.
"""

import re
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

USER_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")


def utcnow() -> datetime:
    return datetime.now(UTC)


class FollowingEntry(BaseModel):
    """A user this record follows."""

    user_id: str = Field(..., description="Followed user ID")
    followed_at: datetime = Field(default_factory=utcnow)
    model_config = ConfigDict(frozen=True)


class FollowerEntry(BaseModel):
    """A user following this record."""

    user_id: str = Field(..., description="Follower user ID")
    followed_at: datetime = Field(default_factory=utcnow)
    model_config = ConfigDict(frozen=True)


class UserRecord(BaseModel):
    """Stored user document.

    ``followers_count`` and ``following_count`` are denormalized copies of
    the list lengths. The directory recomputes them on every write; values
    supplied by callers are overwritten.
    """

    id: str = Field(..., pattern=USER_ID_PATTERN.pattern, description="User ID")
    name: str = Field(..., min_length=1, max_length=50, description="Display name")
    email: str = Field(..., description="Unique, case-insensitive email")
    password_hash: str = Field("", description="Owned by the identity provider")
    avatar: str = Field("", description="Avatar URL")
    is_private: bool = Field(False, description="Private profile flag")
    following: list[FollowingEntry] = Field(default_factory=list)
    followers: list[FollowerEntry] = Field(default_factory=list)
    followers_count: int = Field(0, ge=0)
    following_count: int = Field(0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    model_config = ConfigDict(validate_assignment=True)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    def is_following(self, user_id: str) -> bool:
        return any(entry.user_id == user_id for entry in self.following)

    def has_follower(self, user_id: str) -> bool:
        return any(entry.user_id == user_id for entry in self.followers)

    def counters_consistent(self) -> bool:
        return (
            self.followers_count == len(self.followers)
            and self.following_count == len(self.following)
        )
