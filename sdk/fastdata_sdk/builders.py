"""
Action builders for FastData KV writes.

Each builder turns a social action into ActionArgs, the flat
key -> value|None mapping submitted as one __fastdata_kv transaction.
Builders are pure: no I/O, same input always gives the same output.

Keys produced:
    profile/name, profile/image/url, profile/about
    profile/tags/{tag}, profile/linktree/{platform}
    post/main, post/comment
    graph/follow/{account}
    index/post, index/comment, index/hashtag, index/like, index/repost, index/notify

Example:
    >>> build_follow_args("alice.near", "bob.near")["graph/follow/bob.near"]
    ''
    >>> build_unfollow_args("alice.near", "bob.near")
    {'graph/follow/bob.near': None}

Invariants:
    - Committing the same args twice is safe (last write wins per key)
    - Nested values are compact JSON strings
    - A commit carries at most MAX_KEYS_PER_COMMIT keys
"""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Mapping, Optional, Union

from .config import KV_METHOD, MAX_KEYS_PER_COMMIT
from .errors import ValidationError
from .models import (
    ActionArgs,
    ActionItem,
    CommentInput,
    FastDataTransaction,
    PostInput,
    ProfileInput,
)
from .text import extract_hashtags, extract_mentions
from .validate import require_account_id, require_non_empty


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _index_value(entries: List[dict]) -> str:
    """One entry is written as an object, several as an array."""
    if len(entries) == 1:
        return _dumps(entries[0])
    return _dumps(entries)


def _item_path(item: ActionItem) -> str:
    path = require_non_empty(item.path, "item.path")
    block_height = require_non_empty(item.block_height, "item.block_height")
    return f"{path}\n{block_height}"


def _author_of(path: str) -> str:
    return path.split("/")[0]


def build_profile_args(
    signer_id: str,
    profile: Union[ProfileInput, Mapping[str, Any]],
) -> ActionArgs:
    """Build KV pairs for setting a profile.

    Only non-empty fields are written; an empty profile gives an empty map.
    Tag and platform names are trimmed and blank ones dropped.
    """
    if isinstance(profile, Mapping):
        unknown = set(profile) - set(ProfileInput.__dataclass_fields__)
        if unknown:
            raise ValidationError(
                f"Unknown profile field(s): {', '.join(sorted(unknown))}",
                field_name=sorted(unknown)[0],
            )
        profile = ProfileInput(**profile)

    args: ActionArgs = {}
    if profile.name:
        args["profile/name"] = profile.name
    if profile.image_url:
        args["profile/image/url"] = profile.image_url
    if profile.about:
        args["profile/about"] = profile.about
    for tag in profile.tags or ():
        tag = tag.strip()
        if tag:
            args[f"profile/tags/{tag}"] = ""
    for platform, handle in (profile.linktree or {}).items():
        platform = platform.strip()
        if platform and handle:
            args[f"profile/linktree/{platform}"] = handle
    return args


def build_post_args(signer_id: str, post: PostInput) -> ActionArgs:
    """Build KV pairs for creating a post.

    #hashtags are indexed under index/hashtag and @mentions notified under
    index/notify; both keys are omitted when the text has no matches.
    """
    signer_id = require_non_empty(signer_id, "signer_id")
    text = require_non_empty(post.text, "post.text")

    args: ActionArgs = {
        "post/main": _dumps({"text": text}),
        "index/post": _dumps({"key": "main", "value": {"type": post.type or "md"}}),
    }

    hashtags = extract_hashtags(text)
    if hashtags:
        args["index/hashtag"] = _index_value(
            [{"key": tag, "value": {"type": "mention", "path": "post/main"}} for tag in hashtags]
        )

    mentions = extract_mentions(text)
    if mentions:
        args["index/notify"] = _index_value(
            [
                {
                    "key": account,
                    "value": {"type": "mention", "path": "post/main", "accountId": signer_id},
                }
                for account in mentions
            ]
        )

    return args


def build_comment_args(signer_id: str, comment: CommentInput) -> ActionArgs:
    """Build KV pairs for commenting on a post and notifying its author."""
    signer_id = require_non_empty(signer_id, "signer_id")
    text = require_non_empty(comment.text, "comment.text")
    author = require_non_empty(comment.target_author, "comment.target_author")
    block_height = require_non_empty(comment.target_block_height, "comment.target_block_height")

    path = f"{author}/post/main\n{block_height}"
    return {
        "post/comment": _dumps({"text": text}),
        "index/comment": _dumps({"key": path, "value": {"type": "md"}}),
        "index/notify": _dumps(
            {"key": author, "value": {"type": "comment", "path": path, "accountId": signer_id}}
        ),
    }


def build_follow_args(signer_id: str, target: str) -> ActionArgs:
    """Build KV pairs for following an account."""
    signer_id = require_non_empty(signer_id, "signer_id")
    target = require_account_id(target, "target")
    return {
        f"graph/follow/{target}": "",
        "index/notify": _dumps({"key": target, "value": {"type": "follow", "accountId": signer_id}}),
    }


def build_unfollow_args(signer_id: str, target: str) -> ActionArgs:
    """Build KV pairs for unfollowing an account.

    The follow key is tombstoned (None), not omitted.
    """
    target = require_account_id(target, "target")
    return {f"graph/follow/{target}": None}


def build_like_args(signer_id: str, item: ActionItem) -> ActionArgs:
    """Build KV pairs for liking an item and notifying its author."""
    signer_id = require_non_empty(signer_id, "signer_id")
    path = _item_path(item)
    return {
        "index/like": _dumps({"key": path, "value": {"type": "like"}}),
        "index/notify": _dumps(
            {
                "key": _author_of(item.path),
                "value": {"type": "like", "path": path, "accountId": signer_id},
            }
        ),
    }


def build_unlike_args(signer_id: str, item: ActionItem) -> ActionArgs:
    """Build KV pairs for unliking an item."""
    path = _item_path(item)
    return {"index/like": _dumps({"key": path, "value": {"type": "unlike"}})}


def build_repost_args(signer_id: str, item: ActionItem) -> ActionArgs:
    """Build KV pairs for reposting an item and notifying its author."""
    signer_id = require_non_empty(signer_id, "signer_id")
    path = _item_path(item)
    return {
        "index/repost": _dumps({"key": path, "value": {"type": "repost"}}),
        "index/notify": _dumps(
            {
                "key": _author_of(item.path),
                "value": {"type": "repost", "path": path, "accountId": signer_id},
            }
        ),
    }


def build_commit(
    args: ActionArgs,
    contract_id: str,
    gas: str = "1 Tgas",
    *,
    signer_id: Optional[str] = None,
    affected_accounts: Iterable[str] = (),
) -> FastDataTransaction:
    """Wrap ActionArgs in a __fastdata_kv transaction envelope.

    Raises:
        ValidationError: If args exceed MAX_KEYS_PER_COMMIT keys
    """
    contract_id = require_non_empty(contract_id, "contract_id")
    if len(args) > MAX_KEYS_PER_COMMIT:
        raise ValidationError(
            f"Too many keys in one commit ({len(args)}, max {MAX_KEYS_PER_COMMIT})",
            field_name="args",
        )
    return FastDataTransaction(
        contract_id=contract_id,
        method_name=KV_METHOD,
        args=dict(args),
        gas=gas,
        signer_id=signer_id,
        affected_accounts=tuple(dict.fromkeys(affected_accounts)),
    )
