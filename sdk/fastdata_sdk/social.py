"""
Social client for FastData.

This module provides SocialClient, which layers social reads and writes
on top of a KeyValueReader:
- Profiles and follow lists, cached with a TTL and deduplicated in flight
- Feeds and notifications read from the social index
- Transaction builders for profile, post, comment, follow, like and repost
- submit(): hand a transaction to an external submitter, then invalidate
  the affected accounts

Example:
    >>> async with SocialClient.from_settings(ClientSettings()) as social:
    ...     profile = await social.get_profile("alice.near")
    ...     tx = social.build_follow("alice.near", "bob.near")
    ...     tx_hash = await social.submit(tx, wallet)

Invariants:
    - One SocialClient owns its caches; there is no module-level instance
    - Errors are never cached
    - After a successful submit() the signer and affected accounts are
      invalidated immediately; no fixed refetch delay is used
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from .builders import (
    build_comment_args,
    build_commit,
    build_follow_args,
    build_like_args,
    build_post_args,
    build_profile_args,
    build_repost_args,
    build_unfollow_args,
    build_unlike_args,
)
from .cache import TtlCache
from .config import ClientSettings
from .models import (
    ActionItem,
    CommentInput,
    FastDataTransaction,
    FollowResponse,
    IndexEntry,
    PostInput,
    Profile,
    ProfileInput,
    SocialTree,
    TransactionSubmitter,
)
from .reader import KeyValueReader

logger = logging.getLogger(__name__)


class SocialClient:
    """Cached social reads and transaction builders over a KeyValueReader.

    Attributes:
        reader: Underlying KV reader
        contract_id: Default contract for social keys
        profile_cache: Profile cache (default TTL 60s)
        follow_cache: Follower/following cache (default TTL 180s)
    """

    def __init__(
        self,
        reader: KeyValueReader,
        *,
        contract_id: str = "contextual.near",
        profile_ttl: float = 60.0,
        follow_ttl: float = 180.0,
        gas: str = "1 Tgas",
        profile_cache: Optional[TtlCache] = None,
        follow_cache: Optional[TtlCache] = None,
    ) -> None:
        """Initialize client.

        Args:
            reader: KV reader used for all requests
            contract_id: Default social contract
            profile_ttl: Profile cache TTL seconds
            follow_ttl: Follow list cache TTL seconds
            gas: Gas hint for built transactions
            profile_cache: Optional pre-built profile cache
            follow_cache: Optional pre-built follow cache
        """
        self.reader = reader
        self.contract_id = contract_id
        self.gas = gas
        self.profile_cache: TtlCache[Optional[Profile]] = profile_cache or TtlCache(
            profile_ttl, name="profile-cache"
        )
        self.follow_cache: TtlCache[FollowResponse] = follow_cache or TtlCache(
            follow_ttl, name="follow-cache"
        )

    @classmethod
    def from_settings(cls, settings: ClientSettings, **kwargs: Any) -> SocialClient:
        """Build a client and its reader from settings."""
        reader = KeyValueReader(settings.api_url, timeout=settings.request_timeout, **kwargs)
        return cls(
            reader,
            contract_id=settings.kv_contract_id,
            profile_ttl=settings.profile_cache_ttl,
            follow_ttl=settings.follow_cache_ttl,
            gas=settings.kv_gas,
        )

    async def close(self) -> None:
        await self.reader.close()

    async def __aenter__(self) -> SocialClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _cid(self, contract_id: Optional[str]) -> str:
        return contract_id or self.contract_id

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    async def get_profile(
        self,
        account_id: str,
        contract_id: Optional[str] = None,
    ) -> Optional[Profile]:
        """GET /v1/social/profile, cached per (account, contract).

        Returns:
            Profile mapping, or None if the account has no profile
        """
        cid = self._cid(contract_id)

        async def fetch() -> Optional[Profile]:
            return await self.reader.social_profile(account_id, contract_id=cid)

        return await self.profile_cache.get_or_fetch(("profile", account_id, cid), fetch)

    async def get_profiles(
        self,
        account_ids: Iterable[str],
        contract_id: Optional[str] = None,
    ) -> Dict[str, Optional[Profile]]:
        """Fetch several profiles concurrently, one cached call per id."""
        ids = list(dict.fromkeys(account_ids))
        profiles = await asyncio.gather(*(self.get_profile(a, contract_id) for a in ids))
        return dict(zip(ids, profiles))

    # -------------------------------------------------------------------------
    # Social graph
    # -------------------------------------------------------------------------

    async def _follow_page(
        self,
        kind: str,
        account_id: str,
        limit: Optional[int],
        offset: Optional[int],
        contract_id: Optional[str],
    ) -> FollowResponse:
        cid = self._cid(contract_id)

        async def fetch() -> FollowResponse:
            return await self.reader.social_follows(
                kind, account_id, contract_id=cid, limit=limit, offset=offset
            )

        key = (kind, account_id, cid, limit, offset)
        return await self.follow_cache.get_or_fetch(key, fetch)

    async def get_followers(
        self,
        account_id: str,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        contract_id: Optional[str] = None,
    ) -> FollowResponse:
        """GET /v1/social/followers, cached."""
        return await self._follow_page("followers", account_id, limit, offset, contract_id)

    async def get_following(
        self,
        account_id: str,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        contract_id: Optional[str] = None,
    ) -> FollowResponse:
        """GET /v1/social/following, cached."""
        return await self._follow_page("following", account_id, limit, offset, contract_id)

    async def invalidate(self, account_id: str) -> None:
        """Drop every cached profile and follow page scoped to account_id."""
        removed = await self.profile_cache.invalidate(account_id)
        removed += await self.follow_cache.invalidate(account_id)
        logger.debug(f"Invalidated {removed} cached reads for {account_id}")

    # -------------------------------------------------------------------------
    # Explorer passthroughs
    # -------------------------------------------------------------------------

    async def social_get(self, keys: List[str], **options: Any) -> SocialTree:
        options.setdefault("contract_id", self.contract_id)
        return await self.reader.social_get(keys, **options)

    async def social_keys(self, keys: List[str], **options: Any) -> SocialTree:
        options.setdefault("contract_id", self.contract_id)
        return await self.reader.social_keys(keys, **options)

    # -------------------------------------------------------------------------
    # Feeds
    # -------------------------------------------------------------------------

    async def get_account_feed(
        self,
        account_id: str,
        *,
        limit: Optional[int] = None,
        from_index: Optional[int] = None,
        order: Optional[str] = None,
        include_replies: bool = False,
        contract_id: Optional[str] = None,
    ) -> List[IndexEntry]:
        """GET /v1/social/feed/account - an account's posts."""
        return await self.reader.social_account_feed(
            account_id,
            contract_id=self._cid(contract_id),
            limit=limit,
            from_index=from_index,
            order=order,
            include_replies=include_replies,
        )

    async def get_hashtag_feed(self, hashtag: str, **opts: Any) -> List[IndexEntry]:
        """Posts tagged with a hashtag."""
        opts.setdefault("contract_id", self.contract_id)
        return await self.reader.social_index("hashtag", hashtag.lower(), **opts)

    async def get_activity_feed(self, **opts: Any) -> List[IndexEntry]:
        """Global post activity."""
        opts.setdefault("contract_id", self.contract_id)
        return await self.reader.social_index("post", "main", **opts)

    async def get_mentioned_feed(self, account_id: str, **opts: Any) -> List[IndexEntry]:
        """The notify index of an account, every notification type.

        Pages are returned as the server paged them; filter on
        value["type"] to keep only mentions.
        """
        return await self.get_notifications(account_id, **opts)

    async def get_notifications(self, account_id: str, **opts: Any) -> List[IndexEntry]:
        """All notifications addressed to an account."""
        opts.setdefault("contract_id", self.contract_id)
        return await self.reader.social_index("notify", account_id, **opts)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def _commit(
        self,
        args: Dict[str, Optional[str]],
        signer_id: str,
        contract_id: Optional[str],
        affected: Iterable[str] = (),
    ) -> FastDataTransaction:
        return build_commit(
            args,
            self._cid(contract_id),
            self.gas,
            signer_id=signer_id,
            affected_accounts=[signer_id, *affected],
        )

    def build_set_profile(
        self, signer_id: str, profile: ProfileInput, contract_id: Optional[str] = None
    ) -> FastDataTransaction:
        return self._commit(build_profile_args(signer_id, profile), signer_id, contract_id)

    def build_create_post(
        self, signer_id: str, post: PostInput, contract_id: Optional[str] = None
    ) -> FastDataTransaction:
        return self._commit(build_post_args(signer_id, post), signer_id, contract_id)

    def build_create_comment(
        self, signer_id: str, comment: CommentInput, contract_id: Optional[str] = None
    ) -> FastDataTransaction:
        return self._commit(build_comment_args(signer_id, comment), signer_id, contract_id)

    def build_follow(
        self, signer_id: str, target: str, contract_id: Optional[str] = None
    ) -> FastDataTransaction:
        return self._commit(build_follow_args(signer_id, target), signer_id, contract_id, [target])

    def build_unfollow(
        self, signer_id: str, target: str, contract_id: Optional[str] = None
    ) -> FastDataTransaction:
        return self._commit(build_unfollow_args(signer_id, target), signer_id, contract_id, [target])

    def build_like(
        self, signer_id: str, item: ActionItem, contract_id: Optional[str] = None
    ) -> FastDataTransaction:
        return self._commit(build_like_args(signer_id, item), signer_id, contract_id)

    def build_unlike(
        self, signer_id: str, item: ActionItem, contract_id: Optional[str] = None
    ) -> FastDataTransaction:
        return self._commit(build_unlike_args(signer_id, item), signer_id, contract_id)

    def build_repost(
        self, signer_id: str, item: ActionItem, contract_id: Optional[str] = None
    ) -> FastDataTransaction:
        return self._commit(build_repost_args(signer_id, item), signer_id, contract_id)

    async def submit(
        self,
        transaction: FastDataTransaction,
        submitter: TransactionSubmitter,
    ) -> Optional[str]:
        """Submit a transaction and invalidate the accounts it touches.

        Returns:
            Transaction hash reported by the submitter

        Raises:
            Whatever the submitter raises; caches are left untouched then
        """
        tx_hash = await submitter.submit(
            transaction.contract_id,
            transaction.method_name,
            transaction.args,
            transaction.gas,
        )
        logger.info(
            f"Submitted {transaction.method_name} to {transaction.contract_id} "
            f"({len(transaction.args)} keys): {tx_hash}"
        )
        for account_id in transaction.affected_accounts:
            await self.invalidate(account_id)
        return tx_hash
