"""
In-memory FastData state for the sandbox API.

KvStore keeps the append-only KV history and answers every read the SDK
issues (point, prefix, history, reverse, by-key, accounts, diff, timeline,
batch) plus the social views derived from it (glob get/keys, profiles,
follow graph, index and feeds). FastfsStore applies FastFS units and
reassembles multi-part uploads.

Invariants:
    - History is append-only; the latest entry per (writer, contract, key)
      is the current value
    - All keys of one applied transaction share a block height
    - A partial upload becomes visible only once every chunk has arrived
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from fastdata_sdk.config import CHUNK_SIZE
from fastdata_sdk.errors import ValidationError
from fastdata_sdk.explorer import get_path, nest_keys
from fastdata_sdk.fastfs import FastfsUnit, PartialUnit, check_partial_sequence, reassemble
from fastdata_sdk.models import IndexEntry, KvBatchResult, KvEntry, SocialTree

logger = logging.getLogger(__name__)

GENESIS_BLOCK_HEIGHT = 100_000

EntryKey = Tuple[str, str, str]


def _page(items: List[Any], limit: Optional[int], offset: Optional[int]) -> List[Any]:
    start = offset or 0
    return items[start : start + limit] if limit is not None else items[start:]


def _glob_match(pattern: List[str], segments: List[str]) -> Optional[List[str]]:
    """Match a split glob pattern against a split key.

    '*' matches exactly one segment, a trailing '**' matches one or more.
    Returns the matched prefix of segments (shorter than segments when the
    key lies below the pattern), or None.
    """
    for i, part in enumerate(pattern):
        if part == "**":
            return segments if len(segments) > i else None
        if i >= len(segments):
            return None
        if part != "*" and part != segments[i]:
            return None
    return segments[: len(pattern)]


def _set_branch(tree: SocialTree, segments: List[str]) -> None:
    node = tree
    for part in segments:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {"": child} if part in node else {}
            node[part] = child
        node = child


def _decode_index(raw: Optional[str]) -> List[Dict[str, Any]]:
    """Parse an index/* value: one {key, value} object or an array of them."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning(f"Ignoring malformed index value: {raw[:80]}")
        return []
    items = data if isinstance(data, list) else [data]
    return [i for i in items if isinstance(i, dict) and "key" in i]


class KvStore:
    """Append-only KV history with the FastData read API on top."""

    def __init__(self, start_block: int = GENESIS_BLOCK_HEIGHT) -> None:
        self._history: List[KvEntry] = []
        self._latest: Dict[EntryKey, KvEntry] = {}
        self._block_height = start_block

    def __len__(self) -> int:
        return len(self._latest)

    @property
    def block_height(self) -> int:
        return self._block_height

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def apply(
        self,
        predecessor_id: str,
        current_account_id: str,
        args: Mapping[str, Optional[str]],
        tx_hash: str = "",
    ) -> List[KvEntry]:
        """Append one transaction's writes in a new block."""
        for key, value in args.items():
            if not isinstance(key, str) or not key:
                raise ValidationError(f"Invalid key: {key!r}", field_name="args")
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"Value for '{key}' must be a string or null", field_name=key)

        self._block_height += 1
        timestamp = time.time_ns()
        written = []
        for index, (key, value) in enumerate(args.items()):
            entry = KvEntry(
                predecessor_id=predecessor_id,
                current_account_id=current_account_id,
                key=key,
                value=value,
                block_height=self._block_height,
                block_timestamp=timestamp,
                receipt_id=hashlib.sha256(f"{tx_hash}:{index}".encode()).hexdigest()[:32],
                tx_hash=tx_hash,
            )
            self._history.append(entry)
            self._latest[(predecessor_id, current_account_id, key)] = entry
            written.append(entry)
        logger.debug(
            f"Block {self._block_height}: {predecessor_id} wrote {len(written)} keys to {current_account_id}"
        )
        return written

    # -------------------------------------------------------------------------
    # KV reads
    # -------------------------------------------------------------------------

    def _current(self, current_account_id: Optional[str] = None) -> List[KvEntry]:
        entries = [
            e
            for e in self._latest.values()
            if current_account_id is None or e.current_account_id == current_account_id
        ]
        return sorted(entries, key=lambda e: (e.predecessor_id, e.key))

    def get(self, predecessor_id: str, current_account_id: str, key: str) -> Optional[KvEntry]:
        return self._latest.get((predecessor_id, current_account_id, key))

    def query(
        self,
        predecessor_id: str,
        current_account_id: str,
        key_prefix: Optional[str] = None,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        exclude_null: bool = False,
    ) -> List[KvEntry]:
        entries = [
            e
            for e in self._current(current_account_id)
            if e.predecessor_id == predecessor_id
            and e.key.startswith(key_prefix or "")
            and not (exclude_null and e.value is None)
        ]
        return _page(entries, limit, offset)

    def history(
        self,
        predecessor_id: str,
        current_account_id: str,
        key: str,
        *,
        limit: Optional[int] = None,
        order: str = "desc",
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> List[KvEntry]:
        entries = [
            e
            for e in self._history
            if (e.predecessor_id, e.current_account_id, e.key) == (predecessor_id, current_account_id, key)
            and (from_block is None or e.block_height >= from_block)
            and (to_block is None or e.block_height <= to_block)
        ]
        if order != "asc":
            entries.reverse()
        return _page(entries, limit, None)

    def reverse(
        self,
        current_account_id: str,
        key: str,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        exclude_null: bool = False,
    ) -> List[KvEntry]:
        entries = [
            e
            for e in self._current(current_account_id)
            if e.key == key and not (exclude_null and e.value is None)
        ]
        return _page(entries, limit, offset)

    def by_key(
        self,
        key: str,
        *,
        current_account_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[KvEntry]:
        entries = [e for e in self._current(current_account_id) if e.key == key and e.value is not None]
        return _page(entries, limit, offset)

    def accounts(
        self,
        current_account_id: str,
        key: str,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        exclude_null: bool = False,
    ) -> Tuple[List[str], bool]:
        """Distinct writers of key; returns (page, has_more)."""
        writers = list(
            dict.fromkeys(
                e.predecessor_id
                for e in self._current(current_account_id)
                if e.key == key and not (exclude_null and e.value is None)
            )
        )
        page = _page(writers, limit, offset)
        return page, (offset or 0) + len(page) < len(writers)

    def as_of(
        self,
        predecessor_id: str,
        current_account_id: str,
        key: str,
        block_height: int,
    ) -> Optional[KvEntry]:
        """Latest entry for a key at or before block_height."""
        found = None
        for e in self._history:
            if e.block_height > block_height:
                break
            if (e.predecessor_id, e.current_account_id, e.key) == (predecessor_id, current_account_id, key):
                found = e
        return found

    def diff(
        self,
        predecessor_id: str,
        current_account_id: str,
        key: str,
        block_height_a: int,
        block_height_b: int,
    ) -> Tuple[Optional[KvEntry], Optional[KvEntry]]:
        return (
            self.as_of(predecessor_id, current_account_id, key, block_height_a),
            self.as_of(predecessor_id, current_account_id, key, block_height_b),
        )

    def timeline(
        self,
        predecessor_id: str,
        current_account_id: str,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        order: str = "desc",
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> List[KvEntry]:
        entries = [
            e
            for e in self._history
            if e.predecessor_id == predecessor_id
            and e.current_account_id == current_account_id
            and (from_block is None or e.block_height >= from_block)
            and (to_block is None or e.block_height <= to_block)
        ]
        if order != "asc":
            entries.reverse()
        return _page(entries, limit, offset)

    def batch(self, predecessor_id: str, current_account_id: str, keys: Iterable[str]) -> List[KvBatchResult]:
        results = []
        for key in keys:
            if not key:
                results.append(KvBatchResult(key=key, found=False, error="empty key"))
                continue
            entry = self.get(predecessor_id, current_account_id, key)
            if entry is None:
                results.append(KvBatchResult(key=key, found=False))
            else:
                results.append(KvBatchResult(key=key, found=True, value=entry.value))
        return results

    # -------------------------------------------------------------------------
    # Social tree
    # -------------------------------------------------------------------------

    def _social_paths(self, current_account_id: str, return_deleted: bool) -> List[Tuple[List[str], KvEntry]]:
        return [
            (f"{e.predecessor_id}/{e.key}".split("/"), e)
            for e in self._current(current_account_id)
            if return_deleted or e.value is not None
        ]

    def social_get(
        self,
        patterns: Iterable[str],
        current_account_id: str,
        *,
        return_deleted: bool = False,
        with_block_height: bool = False,
    ) -> SocialTree:
        """Values of keys matching glob patterns, as a nested tree.

        Only keys matched in full are returned; '*' does not descend into
        branches.
        """
        flat: Dict[str, Any] = {}
        paths = self._social_paths(current_account_id, return_deleted)
        for pattern in patterns:
            parts = pattern.strip("/").split("/")
            for segments, entry in paths:
                if _glob_match(parts, segments) == segments:
                    value: Any = entry.value
                    if with_block_height:
                        value = {"": entry.value, ":block": entry.block_height}
                    flat["/".join(segments)] = value
        return nest_keys(flat)

    def social_keys(
        self,
        patterns: Iterable[str],
        current_account_id: str,
        *,
        return_deleted: bool = False,
    ) -> SocialTree:
        """Key listing for glob patterns: leaves map to True, branches to {}."""
        leaves: Dict[str, Any] = {}
        branches: Set[Tuple[str, ...]] = set()
        paths = self._social_paths(current_account_id, return_deleted)
        for pattern in patterns:
            parts = pattern.strip("/").split("/")
            for segments, _ in paths:
                matched = _glob_match(parts, segments)
                if matched is None:
                    continue
                if matched == segments:
                    leaves["/".join(segments)] = True
                else:
                    branches.add(tuple(matched))
        tree = nest_keys(leaves)
        for branch in sorted(branches):
            _set_branch(tree, list(branch))
        return tree

    def profile(self, account_id: str, current_account_id: str) -> Optional[SocialTree]:
        """The account's profile/** subtree, None if it has none."""
        tree = self.social_get([f"{account_id}/profile/**"], current_account_id)
        profile = get_path(tree, [account_id, "profile"])
        return profile if isinstance(profile, dict) else None

    def following(self, account_id: str, current_account_id: str) -> List[str]:
        prefix = "graph/follow/"
        return [
            e.key[len(prefix) :]
            for e in self.query(account_id, current_account_id, prefix, exclude_null=True)
            if "/" not in e.key[len(prefix) :]
        ]

    def followers(self, account_id: str, current_account_id: str) -> List[str]:
        entries = self.reverse(current_account_id, f"graph/follow/{account_id}", exclude_null=True)
        return [e.predecessor_id for e in entries]

    # -------------------------------------------------------------------------
    # Index and feeds
    # -------------------------------------------------------------------------

    def index(
        self,
        action: str,
        key: str,
        current_account_id: str,
        *,
        account_id: Optional[str] = None,
        limit: Optional[int] = None,
        from_block: Optional[int] = None,
        order: str = "asc",
    ) -> List[IndexEntry]:
        """Entries written under index/{action} for one index key."""
        hits = []
        for e in self._history:
            if e.current_account_id != current_account_id or e.key != f"index/{action}":
                continue
            if account_id is not None and e.predecessor_id != account_id:
                continue
            for item in _decode_index(e.value):
                if item["key"] == key:
                    hits.append(IndexEntry(e.predecessor_id, e.block_height, item.get("value")))
        if order == "desc":
            hits.reverse()
            if from_block is not None:
                hits = [h for h in hits if h.block_height <= from_block]
        elif from_block is not None:
            hits = [h for h in hits if h.block_height >= from_block]
        return _page(hits, limit, None)

    def account_feed(
        self,
        account_id: str,
        current_account_id: str,
        *,
        limit: Optional[int] = None,
        from_block: Optional[int] = None,
        order: str = "desc",
        include_replies: bool = False,
    ) -> List[IndexEntry]:
        """Posts (and optionally comments) written by one account."""
        actions = {"index/post"} | ({"index/comment"} if include_replies else set())
        hits = [
            IndexEntry(e.predecessor_id, e.block_height, item.get("value"))
            for e in self._history
            if e.predecessor_id == account_id
            and e.current_account_id == current_account_id
            and e.key in actions
            for item in _decode_index(e.value)
        ]
        if order != "asc":
            hits.reverse()
            if from_block is not None:
                hits = [h for h in hits if h.block_height <= from_block]
        elif from_block is not None:
            hits = [h for h in hits if h.block_height >= from_block]
        return _page(hits, limit, None)


# =============================================================================
# FastFS
# =============================================================================


@dataclass(frozen=True)
class StoredFile:
    """A completed FastFS upload."""

    mime_type: str
    content: bytes
    nonce: int = 0
    block_height: int = 0


FileKey = Tuple[str, str, str]


class FastfsStore:
    """Applies FastFS units and serves completed files."""

    def __init__(self) -> None:
        self._files: Dict[FileKey, StoredFile] = {}
        self._partials: Dict[Tuple[str, str, str, int], Dict[int, PartialUnit]] = {}

    def __len__(self) -> int:
        return len(self._files)

    def apply(self, account_id: str, contract_id: str, unit: FastfsUnit, block_height: int = 0) -> Optional[StoredFile]:
        """Apply one unit; returns the file if this unit completed it."""
        key = (account_id, contract_id, unit.relative_path)
        if not isinstance(unit, PartialUnit):
            if unit.content is None:
                self._files.pop(key, None)
                logger.debug(f"Deleted {account_id}/{unit.relative_path}")
                return None
            stored = StoredFile(unit.mime_type, unit.content, block_height=block_height)
            self._files[key] = stored
            return stored

        if unit.offset % CHUNK_SIZE or unit.offset >= unit.full_size:
            raise ValidationError(
                f"Chunk offset {unit.offset} invalid for size {unit.full_size}",
                field_name="offset",
            )
        bucket = self._partials.setdefault((*key, unit.nonce), {})
        bucket[unit.offset] = unit
        if sum(u.size for u in bucket.values()) < unit.full_size:
            return None

        chunks = [bucket[o] for o in sorted(bucket)]
        del self._partials[(*key, unit.nonce)]
        try:
            check_partial_sequence(chunks)
        except ValidationError:
            logger.warning(f"Discarding inconsistent upload {account_id}/{unit.relative_path} (nonce {unit.nonce})")
            raise
        stored = StoredFile(unit.mime_type, reassemble(chunks), unit.nonce, block_height)
        self._files[key] = stored
        logger.debug(f"Reassembled {account_id}/{unit.relative_path} from {len(chunks)} chunks")
        return stored

    def get(self, account_id: str, contract_id: str, path: str) -> Optional[StoredFile]:
        return self._files.get((account_id, contract_id, path.lstrip("/")))

    def list_files(self, account_id: str, contract_id: str) -> List[str]:
        return sorted(p for (a, c, p) in self._files if a == account_id and c == contract_id)

    @property
    def pending_uploads(self) -> int:
        return len(self._partials)
