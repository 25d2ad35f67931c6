"""Service module for the follow/unfollow social graph.

This module provides the SocialGraphService class, which owns the
relationship between two users' ``following`` and ``followers`` lists:

- Following and unfollowing inside one transaction spanning both records
- Paginated, newest-first listing of followers and followed users
- Follow status lookups
- Follow suggestions ranked by popularity

Invariants maintained on every mutation:

- B is in A.following if and only if A is in B.followers
- No user follows itself
- A user id appears at most once in each list
- Stored counters equal the lengths of their lists

Inputs are validated before any transaction opens. Storage failures abort
the transaction and surface as ``TransientError``. Relationship drift found
along the way is repaired where possible and logged as a
``ConsistencyError``; it never fails the operation.
"""

import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from time import perf_counter

from prometheus_client import Counter, Histogram

from ..core.exceptions import (
    AlreadyExistsError,
    ConsistencyError,
    DevlinkError,
    InvalidInputError,
    NotFollowingError,
    SelfRelationError,
    StorageError,
    TransientError,
    UserNotFoundError,
)
from ..core.logging import ContextLogger
from ..core.settings import GraphSettings, settings
from ..schemas.graph import (
    FollowResponse,
    FollowStatusResponse,
    RelationshipEntry,
    RelationshipPage,
    Suggestion,
    SuggestionsResponse,
    UnfollowResponse,
    UserSummary,
)
from ..schemas.users import (
    USER_ID_PATTERN,
    FollowerEntry,
    FollowingEntry,
    UserRecord,
    utcnow,
)
from .directory import DirectoryTransaction, UserDirectory

logger = ContextLogger(__name__)

graph_operations = Counter(
    "devlink_graph_operations_total",
    "Total number of social graph operations",
    ["operation", "status"],
)

graph_operation_duration = Histogram(
    "devlink_graph_operation_duration_seconds",
    "Social graph operation duration in seconds",
    ["operation"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

consistency_events = Counter(
    "devlink_graph_consistency_events_total",
    "Relationship drift detected during graph operations",
    ["kind"],
)


def normalize_user_id(user_id: str, field: str = "user_id") -> str:
    """Validate a user id and return it lowercased.

    Raises:
        InvalidInputError: If ``user_id`` is not 24 hex characters.
    """
    if not isinstance(user_id, str) or not USER_ID_PATTERN.fullmatch(user_id):
        raise InvalidInputError(
            "Invalid user ID format", details={field: str(user_id)}
        )
    return user_id.lower()


def summarize(record: UserRecord) -> UserSummary:
    return UserSummary(user_id=record.id, name=record.name, avatar=record.avatar)


class SocialGraphService:
    """Follow/unfollow operations over a user directory.

    The service keeps no state between calls; everything lives in the
    directory it is given.

    Attributes:
        directory: User directory the graph is stored in.
        config: Pagination limits and transaction timeout.
    """

    def __init__(
        self, directory: UserDirectory, config: GraphSettings | None = None
    ) -> None:
        self.directory = directory
        self.config = config or settings.graph

    async def follow(self, caller_id: str, target_id: str) -> FollowResponse:
        """Make ``caller_id`` follow ``target_id``.

        Args:
            caller_id: Authenticated user starting the follow.
            target_id: User to follow.

        Returns:
            FollowResponse: The followed user and both updated counts.

        Raises:
            InvalidInputError: If either id is malformed.
            SelfRelationError: If caller and target are the same user.
            UserNotFoundError: If either user does not exist.
            AlreadyExistsError: If the caller already follows the target.
            TransientError: If the transaction could not be completed.
        """
        async with self._observe("follow"):
            caller_id = normalize_user_id(caller_id, "caller_id")
            target_id = normalize_user_id(target_id, "target_id")
            if caller_id == target_id:
                raise SelfRelationError(
                    "You can't follow yourself", details={"user_id": caller_id}
                )

            async with self._storage_guard("follow"), self.directory.transaction(
                caller_id, target_id, timeout=self.config.transaction_timeout
            ) as txn:
                caller, target = await self._load_pair(txn, caller_id, target_id)

                if caller.is_following(target_id):
                    raise AlreadyExistsError(
                        "You are already following this user",
                        details={"caller_id": caller_id, "target_id": target_id},
                    )

                if target.has_follower(caller_id):
                    self._report_inconsistency(
                        "stale_follower",
                        "Follower entry without matching following entry",
                        caller_id=caller_id,
                        target_id=target_id,
                    )
                    target.followers = [
                        e for e in target.followers if e.user_id != caller_id
                    ]

                now = utcnow()
                caller.following.insert(
                    0, FollowingEntry(user_id=target_id, followed_at=now)
                )
                target.followers.insert(
                    0, FollowerEntry(user_id=caller_id, followed_at=now)
                )
                txn.save(caller)
                txn.save(target)

            logger.info(
                "User followed",
                extra={"caller_id": caller_id, "target_id": target_id},
            )
            return FollowResponse(
                message=f"You are now following {target.name}",
                following=summarize(target),
                following_count=len(caller.following),
                target_followers_count=len(target.followers),
            )

    async def unfollow(self, caller_id: str, target_id: str) -> UnfollowResponse:
        """Make ``caller_id`` stop following ``target_id``.

        A missing reciprocal follower entry on the target does not fail the
        operation; it is logged as a consistency event and the caller's
        following entry is still removed.

        Raises:
            InvalidInputError: If either id is malformed.
            SelfRelationError: If caller and target are the same user.
            UserNotFoundError: If either user does not exist.
            NotFollowingError: If the caller does not follow the target.
            TransientError: If the transaction could not be completed.
        """
        async with self._observe("unfollow"):
            caller_id = normalize_user_id(caller_id, "caller_id")
            target_id = normalize_user_id(target_id, "target_id")
            if caller_id == target_id:
                raise SelfRelationError(
                    "You can't unfollow yourself", details={"user_id": caller_id}
                )

            async with self._storage_guard("unfollow"), self.directory.transaction(
                caller_id, target_id, timeout=self.config.transaction_timeout
            ) as txn:
                caller, target = await self._load_pair(txn, caller_id, target_id)

                if not caller.is_following(target_id):
                    raise NotFollowingError(
                        "You are not following this user",
                        details={"caller_id": caller_id, "target_id": target_id},
                    )

                caller.following = [
                    e for e in caller.following if e.user_id != target_id
                ]
                if target.has_follower(caller_id):
                    target.followers = [
                        e for e in target.followers if e.user_id != caller_id
                    ]
                else:
                    self._report_inconsistency(
                        "missing_follower",
                        "Following entry without matching follower entry",
                        caller_id=caller_id,
                        target_id=target_id,
                    )
                txn.save(caller)
                txn.save(target)

            logger.info(
                "User unfollowed",
                extra={"caller_id": caller_id, "target_id": target_id},
            )
            return UnfollowResponse(
                message=f"You have unfollowed {target.name}",
                unfollowed=summarize(target),
                following_count=len(caller.following),
                target_followers_count=len(target.followers),
            )

    async def list_followers(
        self, target_id: str, page: int = 1, page_size: int | None = None
    ) -> RelationshipPage:
        """List users following ``target_id``, most recent first."""
        return await self._list_relation("followers", target_id, page, page_size)

    async def list_following(
        self, target_id: str, page: int = 1, page_size: int | None = None
    ) -> RelationshipPage:
        """List users ``target_id`` follows, most recent first."""
        return await self._list_relation("following", target_id, page, page_size)

    async def follow_status(
        self, caller_id: str, target_id: str
    ) -> FollowStatusResponse:
        """Check whether ``caller_id`` currently follows ``target_id``.

        Reads only the caller's record; an unknown caller follows nobody.
        """
        async with self._observe("follow_status"):
            caller_id = normalize_user_id(caller_id, "caller_id")
            target_id = normalize_user_id(target_id, "target_id")

            async with self._storage_guard("follow_status"):
                caller = await self.directory.get(caller_id)

            return FollowStatusResponse(
                is_following=caller is not None and caller.is_following(target_id),
                user_id=target_id,
            )

    async def suggest(
        self, caller_id: str, limit: int | None = None
    ) -> SuggestionsResponse:
        """Suggest users to follow, most followed first.

        The caller and everyone the caller already follows are excluded.
        Ties on follower count go to the most recently created account.
        """
        async with self._observe("suggest"):
            caller_id = normalize_user_id(caller_id, "caller_id")
            if limit is None:
                limit = self.config.default_suggestion_limit
            if limit < 1:
                raise InvalidInputError(
                    "limit must be at least 1", details={"limit": limit}
                )
            limit = min(limit, self.config.max_suggestion_limit)

            async with self._storage_guard("suggest"):
                caller = await self.directory.get(caller_id)
                exclude = {caller_id}
                if caller is not None:
                    exclude.update(e.user_id for e in caller.following)
                ranked = await self.directory.top_by_followers(exclude, limit)

            return SuggestionsResponse(
                suggestions=[
                    Suggestion(
                        user_id=r.id,
                        name=r.name,
                        avatar=r.avatar,
                        followers_count=r.followers_count,
                    )
                    for r in ranked
                ]
            )

    async def _list_relation(
        self, relation: str, target_id: str, page: int, page_size: int | None
    ) -> RelationshipPage:
        async with self._observe(f"list_{relation}"):
            target_id = normalize_user_id(target_id, "target_id")
            page, page_size = self._pagination(page, page_size)

            async with self._storage_guard(f"list_{relation}"):
                record = await self.directory.get(target_id)
                if record is None:
                    raise UserNotFoundError(
                        "User not found", details={"user_id": target_id}
                    )

                entries = getattr(record, relation)
                offset = (page - 1) * page_size
                window = entries[offset : offset + page_size]
                related = await self.directory.get_many(e.user_id for e in window)

            resolved = []
            for entry in window:
                user = related.get(entry.user_id)
                if user is None:
                    self._report_inconsistency(
                        "dangling_entry",
                        f"{relation} entry points to a missing user",
                        user_id=target_id,
                        related_id=entry.user_id,
                    )
                    continue
                resolved.append(
                    RelationshipEntry(
                        user_id=user.id,
                        name=user.name,
                        avatar=user.avatar,
                        followed_at=entry.followed_at,
                    )
                )

            total = len(entries)
            return RelationshipPage(
                entries=resolved,
                total=total,
                page=page,
                page_size=page_size,
                pages=math.ceil(total / page_size),
            )

    def _pagination(self, page: int, page_size: int | None) -> tuple[int, int]:
        if page_size is None:
            page_size = self.config.default_page_size
        if page < 1:
            raise InvalidInputError("page must be at least 1", details={"page": page})
        if page_size < 1:
            raise InvalidInputError(
                "page size must be at least 1", details={"page_size": page_size}
            )
        return page, min(page_size, self.config.max_page_size)

    async def _load_pair(
        self, txn: DirectoryTransaction, caller_id: str, target_id: str
    ) -> tuple[UserRecord, UserRecord]:
        target = await txn.get(target_id)
        if target is None:
            raise UserNotFoundError("User not found", details={"user_id": target_id})
        caller = await txn.get(caller_id)
        if caller is None:
            raise UserNotFoundError(
                "Current user not found", details={"user_id": caller_id}
            )
        for record in (caller, target):
            if not record.counters_consistent():
                # Commit rewrites the counters from the lists.
                self._report_inconsistency(
                    "counter_drift",
                    "Stored counters do not match relationship lists",
                    user_id=record.id,
                    followers_count=str(record.followers_count),
                    following_count=str(record.following_count),
                )
        return caller, target

    def _report_inconsistency(self, kind: str, message: str, **details: str) -> None:
        error = ConsistencyError(message, details=details)
        consistency_events.labels(kind=kind).inc()
        logger.warning(
            f"{error.error_code}: {error.message}",
            extra={"error_code": error.error_code, "kind": kind, "details": details},
        )

    @asynccontextmanager
    async def _storage_guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except StorageError as e:
            logger.warning(
                f"{operation} aborted by storage failure: {e.message}",
                extra={"error_code": e.error_code, "details": e.details},
            )
            raise TransientError(
                "The operation could not be completed, please retry",
                details={"operation": operation},
            ) from e

    @asynccontextmanager
    async def _observe(self, operation: str) -> AsyncIterator[None]:
        start = perf_counter()
        status = "success"
        try:
            yield
        except DevlinkError as e:
            status = e.error_code
            raise
        except Exception:
            status = "error"
            raise
        finally:
            graph_operations.labels(operation=operation, status=status).inc()
            graph_operation_duration.labels(operation=operation).observe(
                perf_counter() - start
            )
