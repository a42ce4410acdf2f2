"""
Lazy explorer for the social key namespace.

Social keys are '/'-delimited paths per account (profile/name,
graph/follow/bob.near). The API returns them as nested trees; this
module provides helpers to build and walk such trees, and an Explorer
that fetches a pattern once and loads deeper levels only when a node is
expanded.

Example:
    >>> explorer = Explorer(reader, contract_id="contextual.near")
    >>> view = await explorer.explore("alice.near/*")
    >>> profile = view.find("profile")
    >>> await explorer.expand(profile)   # fetches alice.near/profile/*

Invariants:
    - expand() never fetches for a leaf or an already-loaded branch
    - explore() issues no value fetch when the key listing is empty
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from .models import KvEntry, SocialTree, SocialValue
from .reader import KeyValueReader

logger = logging.getLogger(__name__)

_TRAILING_GLOB = re.compile(r"/?\*+$")


def nest_keys(flat: Mapping[str, SocialValue]) -> SocialTree:
    """Assemble flat slash-delimited keys into a nested tree.

    A key that is both a leaf and a prefix of another key keeps its value
    under the empty-string child, as the social API does.
    """
    tree: SocialTree = {}
    for key, value in flat.items():
        parts = key.split("/")
        node = tree
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {} if child is None and part not in node else {"": child}
                node[part] = child
            node = child
        last = parts[-1]
        if isinstance(node.get(last), dict):
            node[last][""] = value
        else:
            node[last] = value
    return tree


def flatten_tree(tree: Mapping[str, Any], prefix: str = "") -> Dict[str, SocialValue]:
    """Inverse of nest_keys: map every leaf to its slash-joined path."""
    flat: Dict[str, SocialValue] = {}
    for name, value in tree.items():
        path = f"{prefix}/{name}" if prefix and name else (prefix or name)
        if isinstance(value, dict) and value:
            flat.update(flatten_tree(value, path))
        else:
            flat[path] = value
    return flat


def get_path(tree: Mapping[str, Any], segments: Sequence[str]) -> Any:
    """Walk tree along segments; None if any step is missing or a leaf."""
    node: Any = tree
    for segment in segments:
        if not isinstance(node, dict):
            return None
        node = node.get(segment)
    return node


def pattern_for(account_id: str, path: str = "", recursive: bool = False) -> str:
    """Build a glob pattern: account/path/* (one level) or account/path/** (subtree)."""
    glob = "**" if recursive else "*"
    path = path.strip("/")
    return f"{account_id}/{path}/{glob}" if path else f"{account_id}/{glob}"


def breadcrumb_for(pattern: str) -> List[str]:
    """Split a pattern into navigation segments, dropping the trailing glob."""
    return [s for s in _TRAILING_GLOB.sub("", pattern).split("/") if s]


def is_account_name(name: str) -> bool:
    """Whether a tree segment names an account (links to another tree)."""
    return name.endswith(".near") or name.endswith(".tg")


@dataclass
class ExplorerNode:
    """One node of the explorer tree.

    Attributes:
        account_id: Account the node belongs to
        name: Last path segment
        path: Path below the account (no leading slash)
        value: Leaf value, or the (possibly empty) mapping for a branch
        children: Loaded child nodes, None until the branch is expanded
    """

    account_id: str
    name: str
    path: str
    value: SocialValue
    children: Optional[List[ExplorerNode]] = None

    @property
    def is_branch(self) -> bool:
        return isinstance(self.value, dict)

    @property
    def is_account(self) -> bool:
        return is_account_name(self.name)

    @property
    def loaded(self) -> bool:
        return self.children is not None

    def _load_from(self, subtree: Mapping[str, Any]) -> None:
        self.children = [
            ExplorerNode(self.account_id, name, f"{self.path}/{name}", value)
            for name, value in subtree.items()
        ]
        # Pre-populated branches (from ** listings) are loaded without a fetch
        for child in self.children:
            if isinstance(child.value, dict) and child.value:
                child._load_from(child.value)


@dataclass
class ExplorerView:
    """Result of one explore() call."""

    pattern: str
    keys: SocialTree = field(default_factory=dict)
    values: SocialTree = field(default_factory=dict)
    nodes: List[ExplorerNode] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.keys

    @property
    def breadcrumb(self) -> List[str]:
        return breadcrumb_for(self.pattern)

    def find(self, name: str) -> Optional[ExplorerNode]:
        return next((n for n in self.nodes if n.name == name), None)

    def walk(self) -> Iterator[ExplorerNode]:
        """Depth-first over loaded nodes."""
        stack = list(reversed(self.nodes))
        while stack:
            node = stack.pop()
            yield node
            if node.children:
                stack.extend(reversed(node.children))


class Explorer:
    """Lazy social tree explorer over a KeyValueReader.

    Attributes:
        reader: KV reader
        contract_id: Contract whose social keys are explored
    """

    def __init__(self, reader: KeyValueReader, contract_id: str = "contextual.near") -> None:
        self.reader = reader
        self.contract_id = contract_id

    async def explore(self, pattern: str) -> ExplorerView:
        """Fetch the key listing for pattern and, if non-empty, its values.

        Top-level nodes are the second-level entries of each account
        (e.g. profile, graph, index for alice.near/*).
        """
        keys = await self.reader.social_keys([pattern], contract_id=self.contract_id)
        view = ExplorerView(pattern=pattern, keys=keys or {})
        if view.empty:
            logger.debug(f"No keys for pattern {pattern}")
            return view

        view.values = await self.reader.social_get([pattern], contract_id=self.contract_id)
        for account_id, subtree in view.keys.items():
            if not isinstance(subtree, dict):
                continue
            for name, value in subtree.items():
                node = ExplorerNode(account_id, name, name, value)
                if isinstance(value, dict) and value:
                    node._load_from(value)
                view.nodes.append(node)
        return view

    async def expand(self, node: ExplorerNode) -> List[ExplorerNode]:
        """Load a branch's children on first expansion.

        Returns:
            The node's children (empty for leaves)
        """
        if not node.is_branch:
            return []
        if node.loaded:
            return node.children or []

        pattern = pattern_for(node.account_id, node.path)
        data = await self.reader.social_keys([pattern], contract_id=self.contract_id)
        subtree = get_path(data, [node.account_id, *node.path.split("/")])
        node._load_from(subtree if isinstance(subtree, dict) else {})
        return node.children or []

    async def key_detail(self, predecessor_id: str, key: str) -> Optional[KvEntry]:
        """Latest KV entry behind a selected leaf."""
        return await self.reader.kv_get(predecessor_id, self.contract_id, key)
