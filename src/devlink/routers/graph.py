"""Social graph API endpoints.

This module exposes follow/unfollow and relationship listing under the
``/profile`` prefix:

- PUT  /profile/follow/{user_id}         follow a user (caller required)
- PUT  /profile/unfollow/{user_id}       unfollow a user (caller required)
- GET  /profile/followers/{user_id}      paginated followers (public)
- GET  /profile/following/{user_id}      paginated followed users (public)
- GET  /profile/follow-status/{user_id}  does the caller follow this user
- GET  /profile/suggestions              users the caller may want to follow

Authentication:
    The caller's user id is forwarded by the authentication gateway in the
    ``X-User-ID`` header (see ``devlink.core.security``).

Errors:
    Service errors propagate to the unified handlers registered in
    ``devlink.core.error_handlers``, which map them to status codes.

Example Usage:
    Follow a user:
        PUT /api/v1/profile/follow/65f1c2a9e4b0a1b2c3d4e5f6
        X-User-ID: 65f1c2a9e4b0a1b2c3d4e5f7

    List followers:
        GET /api/v1/profile/followers/65f1c2a9e4b0a1b2c3d4e5f6?page=2&limit=10
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from ..core.dependencies import get_graph_service
from ..core.logging import ContextLogger
from ..core.security import get_current_user_id
from ..schemas.graph import (
    FollowResponse,
    FollowStatusResponse,
    RelationshipPage,
    SuggestionsResponse,
    UnfollowResponse,
)
from ..services.graph import SocialGraphService

_error_example = {
    "application/json": {
        "example": {
            "error": True,
            "message": "User not found",
            "error_code": "UserNotFoundError",
            "status_code": 404,
        }
    }
}

router = APIRouter(
    prefix="/profile",
    tags=["social-graph"],
    responses={
        400: {"description": "Invalid user ID or pagination parameters"},
        404: {"description": "User not found", "content": _error_example},
        503: {"description": "Storage busy, safe to retry"},
    },
)

logger = ContextLogger(__name__)


@router.put(
    "/follow/{user_id}",
    response_model=FollowResponse,
    responses={
        401: {"description": "No caller identity"},
        409: {"description": "Already following this user"},
    },
    summary="Follow a user",
)
async def follow_user(
    user_id: str = Path(..., description="24 character hex user ID"),
    caller_id: str = Depends(get_current_user_id),
    service: SocialGraphService = Depends(get_graph_service),
) -> FollowResponse:
    """Follow ``user_id`` as the authenticated caller."""
    logger.info(
        "Processing follow request",
        extra={"caller_id": caller_id, "target_id": user_id},
    )
    async with logger.track_time("follow"):
        return await service.follow(caller_id, user_id)


@router.put(
    "/unfollow/{user_id}",
    response_model=UnfollowResponse,
    responses={
        401: {"description": "No caller identity"},
        409: {"description": "Not following this user"},
    },
    summary="Unfollow a user",
)
async def unfollow_user(
    user_id: str = Path(..., description="24 character hex user ID"),
    caller_id: str = Depends(get_current_user_id),
    service: SocialGraphService = Depends(get_graph_service),
) -> UnfollowResponse:
    """Stop following ``user_id`` as the authenticated caller."""
    logger.info(
        "Processing unfollow request",
        extra={"caller_id": caller_id, "target_id": user_id},
    )
    async with logger.track_time("unfollow"):
        return await service.unfollow(caller_id, user_id)


@router.get(
    "/followers/{user_id}",
    response_model=RelationshipPage,
    summary="List followers",
    description="Returns a page of the user's followers, most recent first",
)
async def list_followers(
    user_id: str = Path(..., description="24 character hex user ID"),
    page: int = Query(1, description="Page number, starting at 1"),
    limit: Optional[int] = Query(None, description="Page size"),
    service: SocialGraphService = Depends(get_graph_service),
) -> RelationshipPage:
    async with logger.track_time("list_followers"):
        return await service.list_followers(user_id, page=page, page_size=limit)


@router.get(
    "/following/{user_id}",
    response_model=RelationshipPage,
    summary="List followed users",
    description="Returns a page of the users this user follows, most recent first",
)
async def list_following(
    user_id: str = Path(..., description="24 character hex user ID"),
    page: int = Query(1, description="Page number, starting at 1"),
    limit: Optional[int] = Query(None, description="Page size"),
    service: SocialGraphService = Depends(get_graph_service),
) -> RelationshipPage:
    async with logger.track_time("list_following"):
        return await service.list_following(user_id, page=page, page_size=limit)


@router.get(
    "/follow-status/{user_id}",
    response_model=FollowStatusResponse,
    responses={401: {"description": "No caller identity"}},
    summary="Get follow status",
)
async def follow_status(
    user_id: str = Path(..., description="24 character hex user ID"),
    caller_id: str = Depends(get_current_user_id),
    service: SocialGraphService = Depends(get_graph_service),
) -> FollowStatusResponse:
    async with logger.track_time("follow_status"):
        return await service.follow_status(caller_id, user_id)


@router.get(
    "/suggestions",
    response_model=SuggestionsResponse,
    responses={401: {"description": "No caller identity"}},
    summary="Suggest users to follow",
    description="Most followed users the caller does not follow yet",
)
async def suggestions(
    limit: Optional[int] = Query(None, description="Maximum suggestions"),
    caller_id: str = Depends(get_current_user_id),
    service: SocialGraphService = Depends(get_graph_service),
) -> SuggestionsResponse:
    async with logger.track_time("suggest"):
        return await service.suggest(caller_id, limit=limit)
