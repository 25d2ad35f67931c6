"""Social graph schema definitions.

Response models returned by the social graph service and serialized by the
``/profile`` router.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UserSummary(BaseModel):
    """Public identity fields of a user."""

    user_id: str = Field(..., description="User ID")
    name: str = Field(..., description="Display name")
    avatar: str = Field("", description="Avatar URL")
    model_config = ConfigDict()


class FollowResponse(BaseModel):
    """Schema for a successful follow."""

    success: bool = Field(True)
    message: str = Field(..., description="Human-readable confirmation")
    following: UserSummary = Field(..., description="The user now followed")
    following_count: int = Field(..., description="Caller's following count")
    target_followers_count: int = Field(..., description="Target's follower count")
    model_config = ConfigDict()


class UnfollowResponse(BaseModel):
    """Schema for a successful unfollow."""

    success: bool = Field(True)
    message: str = Field(..., description="Human-readable confirmation")
    unfollowed: UserSummary = Field(..., description="The user no longer followed")
    following_count: int = Field(..., description="Caller's following count")
    target_followers_count: int = Field(..., description="Target's follower count")
    model_config = ConfigDict()


class RelationshipEntry(UserSummary):
    """One resolved entry of a followers or following list."""

    followed_at: datetime = Field(..., description="When the follow happened")


class RelationshipPage(BaseModel):
    """A page of a followers or following list, newest first."""

    success: bool = Field(True)
    entries: list[RelationshipEntry] = Field(default_factory=list)
    total: int = Field(..., ge=0, description="Total entries in the list")
    page: int = Field(..., ge=1, description="Requested page, 1-based")
    page_size: int = Field(..., ge=1, description="Effective page size")
    pages: int = Field(..., ge=0, description="ceil(total / page_size)")
    model_config = ConfigDict()


class FollowStatusResponse(BaseModel):
    """Whether the caller follows a user."""

    success: bool = Field(True)
    is_following: bool = Field(...)
    user_id: str = Field(..., description="Queried user ID")
    model_config = ConfigDict()


class Suggestion(UserSummary):
    """A suggested user to follow."""

    followers_count: int = Field(..., ge=0)


class SuggestionsResponse(BaseModel):
    """Ranked follow suggestions."""

    success: bool = Field(True)
    suggestions: list[Suggestion] = Field(default_factory=list)
    model_config = ConfigDict()
