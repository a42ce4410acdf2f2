"""
FastData Python SDK - Client library for the FastData KV and social protocol.

This SDK provides:
- KeyValueReader for the FastData HTTP read API
- SocialClient with cached profile/follow reads and transaction builders
- Pure action builders producing __fastdata_kv payloads
- FastFS upload encoding and an UploadCoordinator
- Explorer for lazily walking the social key namespace

Example:
    >>> from fastdata_sdk import ClientSettings, SocialClient
    >>>
    >>> async with SocialClient.from_settings(ClientSettings()) as social:
    ...     profile = await social.get_profile("alice.near")
    ...     tx = social.build_follow("alice.near", "bob.near")
    ...     await social.submit(tx, wallet)

Invariants:
    - Reads never write; writes go through a TransactionSubmitter
    - Builders are pure and deterministic
    - Caches belong to one client instance

Version: 0.1.0
"""

__version__ = "0.1.0"

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
from .cache import CacheEntry, TtlCache
from .config import CHUNK_SIZE, MAX_FILE_SIZE, ClientSettings
from .errors import (
    FastDataError,
    PathError,
    SizeError,
    TransportError,
    UploadChunkError,
    ValidationError,
)
from .explorer import Explorer, ExplorerNode, ExplorerView, flatten_tree, nest_keys
from .fastfs import PartialUnit, SimpleUnit, decode_unit, encode_unit, reassemble
from .models import (
    ActionItem,
    CommentInput,
    FastDataTransaction,
    FollowResponse,
    IndexEntry,
    KvBatchResult,
    KvDiff,
    KvEntry,
    PostInput,
    ProfileInput,
    TransactionSubmitter,
)
from .reader import KeyValueReader
from .social import SocialClient
from .text import extract_hashtags, extract_mentions
from .upload import FileStatus, FileUpload, UploadCoordinator, encode_file, plan_uploads

__all__ = [
    # Version
    "__version__",
    # Config
    "ClientSettings",
    "CHUNK_SIZE",
    "MAX_FILE_SIZE",
    # Records
    "KvEntry",
    "KvBatchResult",
    "KvDiff",
    "IndexEntry",
    "FollowResponse",
    "FastDataTransaction",
    "TransactionSubmitter",
    "ProfileInput",
    "PostInput",
    "CommentInput",
    "ActionItem",
    # Clients
    "KeyValueReader",
    "SocialClient",
    "TtlCache",
    "CacheEntry",
    "Explorer",
    "ExplorerNode",
    "ExplorerView",
    "nest_keys",
    "flatten_tree",
    # Builders
    "build_profile_args",
    "build_post_args",
    "build_comment_args",
    "build_follow_args",
    "build_unfollow_args",
    "build_like_args",
    "build_unlike_args",
    "build_repost_args",
    "build_commit",
    "extract_mentions",
    "extract_hashtags",
    # Uploads
    "SimpleUnit",
    "PartialUnit",
    "encode_unit",
    "decode_unit",
    "reassemble",
    "encode_file",
    "plan_uploads",
    "FileStatus",
    "FileUpload",
    "UploadCoordinator",
    # Errors
    "FastDataError",
    "ValidationError",
    "PathError",
    "SizeError",
    "TransportError",
    "UploadChunkError",
]
