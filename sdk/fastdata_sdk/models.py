"""
Record types for FastData SDK.

This module provides the data shapes exchanged with the FastData API:
- KvEntry: One stored fact from the KV history
- KvBatchResult: Per-key result of a batch lookup
- KvDiff: Values of one key at two block heights
- IndexEntry: One social index hit (feeds, notifications)
- FollowResponse: Follower/following account page
- FastDataTransaction: Write envelope handed to a TransactionSubmitter

And the inputs accepted by the action builders (ProfileInput, PostInput,
CommentInput, ActionItem).

Invariants:
    - KvEntry.value is None for a tombstone
    - Records parsed from responses tolerate missing fields (projections)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Union

# A node of the social namespace: a stored string, a tombstone, a listing
# marker (True or a block height) or a nested mapping.
SocialValue = Union[str, bool, int, None, Dict[str, Any]]
SocialTree = Dict[str, SocialValue]

ActionArgs = Dict[str, Optional[str]]

Profile = Dict[str, Any]


@dataclass(frozen=True)
class KvEntry:
    """A single write from the KV history.

    Attributes:
        predecessor_id: Account that wrote the value
        current_account_id: Contract the value was written to
        key: Slash-delimited key
        value: Stored value, None for a tombstone
        block_height: Block the write landed in
        block_timestamp: Block timestamp (ns)
        receipt_id: Receipt identifier
        tx_hash: Transaction hash
    """

    predecessor_id: str
    current_account_id: str
    key: str
    value: Optional[str]
    block_height: int = 0
    block_timestamp: int = 0
    receipt_id: str = ""
    tx_hash: str = ""

    @property
    def is_tombstone(self) -> bool:
        return self.value is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the API's JSON shape."""
        return {
            "predecessor_id": self.predecessor_id,
            "current_account_id": self.current_account_id,
            "key": self.key,
            "value": self.value,
            "block_height": self.block_height,
            "block_timestamp": self.block_timestamp,
            "receipt_id": self.receipt_id,
            "tx_hash": self.tx_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> KvEntry:
        """Create from API JSON."""
        return cls(
            predecessor_id=data.get("predecessor_id", ""),
            current_account_id=data.get("current_account_id", ""),
            key=data.get("key", ""),
            value=data.get("value"),
            block_height=int(data.get("block_height") or 0),
            block_timestamp=int(data.get("block_timestamp") or 0),
            receipt_id=data.get("receipt_id") or "",
            tx_hash=data.get("tx_hash") or "",
        )


@dataclass(frozen=True)
class KvBatchResult:
    """Result for one key of a batch lookup."""

    key: str
    found: bool
    value: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> KvBatchResult:
        return cls(
            key=data.get("key", ""),
            found=bool(data.get("found", False)),
            value=data.get("value"),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class KvDiff:
    """A key's entries at two block heights."""

    a: Optional[KvEntry]
    b: Optional[KvEntry]

    @property
    def changed(self) -> bool:
        a_value = self.a.value if self.a else None
        b_value = self.b.value if self.b else None
        return a_value != b_value

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> KvDiff:
        a = data.get("a")
        b = data.get("b")
        return cls(
            a=KvEntry.from_dict(a) if a else None,
            b=KvEntry.from_dict(b) if b else None,
        )


@dataclass(frozen=True)
class IndexEntry:
    """A social index hit.

    Attributes:
        account_id: Account that wrote the index entry
        block_height: Block of the write
        value: Decoded index value (e.g. {"type": "md"})
    """

    account_id: str
    block_height: int
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accountId": self.account_id,
            "blockHeight": self.block_height,
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> IndexEntry:
        return cls(
            account_id=data.get("accountId", ""),
            block_height=int(data.get("blockHeight") or 0),
            value=data.get("value"),
        )


@dataclass(frozen=True)
class FollowResponse:
    """A page of followers or followed accounts."""

    accounts: List[str] = field(default_factory=list)
    count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FollowResponse:
        accounts = list(data.get("accounts") or [])
        return cls(accounts=accounts, count=int(data.get("count", len(accounts))))


@dataclass(frozen=True)
class FastDataTransaction:
    """Write envelope for a TransactionSubmitter.

    Attributes:
        contract_id: Receiving contract
        method_name: __fastdata_kv or __fastdata_fastfs
        args: ActionArgs for KV writes
        gas: Gas hint
        signer_id: Account expected to sign (local metadata)
        affected_accounts: Accounts whose cached reads become stale (local metadata)
    """

    contract_id: str
    method_name: str
    args: ActionArgs
    gas: str
    signer_id: Optional[str] = None
    affected_accounts: tuple[str, ...] = ()


class TransactionSubmitter(Protocol):
    """External collaborator that signs and broadcasts a transaction.

    Returns the transaction hash (or None if the wallet does not report
    one) and raises on failure.
    """

    async def submit(
        self,
        contract_id: str,
        method: str,
        payload: Union[ActionArgs, bytes],
        gas: str,
    ) -> Optional[str]:
        ...


# =============================================================================
# Builder inputs
# =============================================================================


@dataclass
class ProfileInput:
    """Profile fields to write. Unset or empty fields are skipped."""

    name: Optional[str] = None
    image_url: Optional[str] = None
    about: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    linktree: Dict[str, str] = field(default_factory=dict)


@dataclass
class PostInput:
    """A new post."""

    text: str
    type: str = "md"


@dataclass
class CommentInput:
    """A comment on an existing post."""

    text: str
    target_author: str
    target_block_height: Union[str, int]


@dataclass
class ActionItem:
    """Identifies a post or comment for like/unlike/repost.

    Attributes:
        path: Item path, author first (e.g. "alice.near/post/main")
        block_height: Block height of the item's write
        type: Item kind
    """

    path: str
    block_height: Union[str, int]
    type: str = "social"
