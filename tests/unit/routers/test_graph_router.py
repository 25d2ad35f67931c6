"""Unit tests for the social graph router."""

from datetime import UTC, datetime
from functools import partial
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from devlink.core.error_handlers import register_error_handlers
from devlink.core.exceptions import (
    AlreadyExistsError,
    InvalidInputError,
    NotFollowingError,
    SelfRelationError,
    TransientError,
    UserNotFoundError,
)
from devlink.core.settings import settings
from devlink.routers.graph import get_graph_service, router
from devlink.schemas.graph import (
    FollowResponse,
    FollowStatusResponse,
    RelationshipEntry,
    RelationshipPage,
    Suggestion,
    SuggestionsResponse,
    UnfollowResponse,
    UserSummary,
)
from devlink.services.directory import InMemoryUserDirectory
from devlink.services.graph import SocialGraphService

CALLER = "a" * 24
TARGET = "b" * 24
HEADERS = {"X-User-ID": CALLER}


@pytest.fixture
def app(mock_graph_service):
    """Fixture for FastAPI test application."""
    app = FastAPI()

    def get_test_service():
        return mock_graph_service

    app.dependency_overrides[get_graph_service] = get_test_service
    register_error_handlers(app)
    app.include_router(router)
    return app


@pytest.fixture
def client(app):
    """Fixture for FastAPI test client."""
    return TestClient(app, raise_server_exceptions=False)


def test_follow_success(client, mock_graph_service):
    mock_graph_service.follow = AsyncMock(
        return_value=FollowResponse(
            message="You are now following Bob",
            following=UserSummary(user_id=TARGET, name="Bob", avatar=""),
            following_count=1,
            target_followers_count=3,
        )
    )

    response = client.put(f"/profile/follow/{TARGET}", headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["following"]["user_id"] == TARGET
    assert body["following_count"] == 1
    assert body["target_followers_count"] == 3
    mock_graph_service.follow.assert_awaited_once_with(CALLER, TARGET)


def test_follow_requires_identity(client, mock_graph_service):
    mock_graph_service.follow = AsyncMock()

    response = client.put(f"/profile/follow/{TARGET}")

    assert response.status_code == 401
    assert response.json()["error_code"] == "MISSING_IDENTITY"
    mock_graph_service.follow.assert_not_awaited()


def test_api_key_is_enforced_when_configured(client, mock_graph_service, monkeypatch):
    monkeypatch.setattr(settings.security, "api_key", "gateway-secret")
    mock_graph_service.follow_status = AsyncMock(
        return_value=FollowStatusResponse(is_following=False, user_id=TARGET)
    )

    rejected = client.get(f"/profile/follow-status/{TARGET}", headers=HEADERS)
    accepted = client.get(
        f"/profile/follow-status/{TARGET}",
        headers={**HEADERS, "X-API-Key": "gateway-secret"},
    )

    assert rejected.status_code == 401
    assert rejected.json()["error_code"] == "INVALID_API_KEY"
    assert accepted.status_code == 200


@pytest.mark.parametrize(
    "error,status_code",
    [
        (SelfRelationError("You can't follow yourself"), 400),
        (InvalidInputError("Invalid user ID format"), 400),
        (UserNotFoundError("User not found"), 404),
        (AlreadyExistsError("You are already following this user"), 409),
        (TransientError("please retry"), 503),
    ],
)
def test_follow_error_mapping(client, mock_graph_service, error, status_code):
    mock_graph_service.follow = AsyncMock(side_effect=error)

    response = client.put(f"/profile/follow/{TARGET}", headers=HEADERS)

    assert response.status_code == status_code
    body = response.json()
    assert body["error"] is True
    assert body["message"] == error.message
    assert body["error_code"] == error.error_code


def test_transient_error_sets_retry_after(client, mock_graph_service):
    mock_graph_service.unfollow = AsyncMock(side_effect=TransientError("retry"))

    response = client.put(f"/profile/unfollow/{TARGET}", headers=HEADERS)

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"


def test_unfollow_not_following(client, mock_graph_service):
    mock_graph_service.unfollow = AsyncMock(
        side_effect=NotFollowingError("You are not following this user")
    )

    response = client.put(f"/profile/unfollow/{TARGET}", headers=HEADERS)

    assert response.status_code == 409
    assert response.json()["error_code"] == "NotFollowingError"


def test_unfollow_success(client, mock_graph_service):
    mock_graph_service.unfollow = AsyncMock(
        return_value=UnfollowResponse(
            message="You have unfollowed Bob",
            unfollowed=UserSummary(user_id=TARGET, name="Bob"),
            following_count=0,
            target_followers_count=0,
        )
    )

    response = client.put(f"/profile/unfollow/{TARGET}", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["unfollowed"]["name"] == "Bob"


def test_list_followers_passes_pagination(client, mock_graph_service):
    followed_at = datetime(2024, 3, 1, tzinfo=UTC)
    mock_graph_service.list_followers = AsyncMock(
        return_value=RelationshipPage(
            entries=[
                RelationshipEntry(
                    user_id=CALLER, name="Alice", avatar="", followed_at=followed_at
                )
            ],
            total=11,
            page=2,
            page_size=10,
            pages=2,
        )
    )

    response = client.get(f"/profile/followers/{TARGET}?page=2&limit=10")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 11
    assert body["pages"] == 2
    assert body["entries"][0]["name"] == "Alice"
    mock_graph_service.list_followers.assert_awaited_once_with(
        TARGET, page=2, page_size=10
    )


def test_list_following_without_identity_is_public(client, mock_graph_service):
    mock_graph_service.list_following = AsyncMock(
        return_value=RelationshipPage(total=0, page=1, page_size=20, pages=0)
    )

    response = client.get(f"/profile/following/{TARGET}")

    assert response.status_code == 200
    mock_graph_service.list_following.assert_awaited_once_with(
        TARGET, page=1, page_size=None
    )


def test_suggestions(client, mock_graph_service):
    mock_graph_service.suggest = AsyncMock(
        return_value=SuggestionsResponse(
            suggestions=[
                Suggestion(user_id=TARGET, name="Bob", avatar="", followers_count=7)
            ]
        )
    )

    response = client.get("/profile/suggestions?limit=5", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["suggestions"][0]["followers_count"] == 7
    mock_graph_service.suggest.assert_awaited_once_with(CALLER, limit=5)


def test_unexpected_error_is_500(client, mock_graph_service):
    mock_graph_service.follow_status = AsyncMock(side_effect=Exception("boom"))

    response = client.get(f"/profile/follow-status/{TARGET}", headers=HEADERS)

    assert response.status_code == 500
    assert response.json()["error_code"] == "INTERNAL_SERVER_ERROR"


def test_follow_flow_against_real_service():
    """Follow, list and unfollow through HTTP with a real directory."""
    directory = InMemoryUserDirectory()
    service = SocialGraphService(directory)
    app = FastAPI()
    app.dependency_overrides[get_graph_service] = lambda: service
    register_error_handlers(app)
    app.include_router(router)

    with TestClient(app) as client:
        alice = client.portal.call(
            partial(directory.create_user, name="Alice", email="alice@example.com")
        )
        bob = client.portal.call(
            partial(directory.create_user, name="Bob", email="bob@example.com")
        )
        as_alice = {"X-User-ID": alice.id}

        assert client.put(f"/profile/follow/{bob.id}", headers=as_alice).status_code == 200
        assert client.put(f"/profile/follow/{bob.id}", headers=as_alice).status_code == 409
        assert client.put(f"/profile/follow/{alice.id}", headers=as_alice).status_code == 400

        followers = client.get(f"/profile/followers/{bob.id}").json()
        assert [e["user_id"] for e in followers["entries"]] == [alice.id]

        status = client.get(f"/profile/follow-status/{bob.id}", headers=as_alice)
        assert status.json()["is_following"] is True

        assert client.get(f"/profile/followers/{bob.id}?page=0").status_code == 400

        unfollow = client.put(f"/profile/unfollow/{bob.id}", headers=as_alice)
        assert unfollow.status_code == 200
        assert unfollow.json()["target_followers_count"] == 0
