"""
Unit tests for the social tree explorer.

Tests cover:
- Tree helpers (nest, flatten, path lookup, patterns, breadcrumbs)
- Lazy expansion against a mocked reader
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from fastdata_sdk.explorer import (
    Explorer,
    ExplorerNode,
    breadcrumb_for,
    flatten_tree,
    get_path,
    nest_keys,
    pattern_for,
)
from fastdata_sdk.reader import KeyValueReader


class TestTreeHelpers:
    """Tests for the pure tree helpers."""

    def test_nest_keys(self):
        tree = nest_keys(
            {
                "alice.near/profile/name": "Alice",
                "alice.near/profile/image/url": "https://img",
                "alice.near/graph/follow/bob.near": "",
            }
        )
        assert tree == {
            "alice.near": {
                "profile": {"name": "Alice", "image": {"url": "https://img"}},
                "graph": {"follow": {"bob.near": ""}},
            }
        }

    def test_nest_keys_leaf_and_prefix(self):
        tree = nest_keys({"a/b": "leaf", "a/b/c": "deeper"})
        assert tree == {"a": {"b": {"": "leaf", "c": "deeper"}}}
        tree = nest_keys({"a/b/c": "deeper", "a/b": "leaf"})
        assert tree == {"a": {"b": {"c": "deeper", "": "leaf"}}}

    def test_flatten_inverts_nest(self):
        flat = {"x/profile/name": "X", "x/profile/tags/dev": "", "x/post/main": None}
        assert flatten_tree(nest_keys(flat)) == flat

    def test_get_path(self):
        tree = {"a": {"b": {"c": 1}}}
        assert get_path(tree, ["a", "b", "c"]) == 1
        assert get_path(tree, ["a", "x"]) is None
        assert get_path(tree, ["a", "b", "c", "d"]) is None

    def test_pattern_for(self):
        assert pattern_for("alice.near") == "alice.near/*"
        assert pattern_for("alice.near", "/profile/") == "alice.near/profile/*"
        assert pattern_for("alice.near", "profile", recursive=True) == "alice.near/profile/**"

    def test_breadcrumb(self):
        assert breadcrumb_for("alice.near/profile/*") == ["alice.near", "profile"]
        assert breadcrumb_for("alice.near/**") == ["alice.near"]
        assert breadcrumb_for("alice.near/profile/name") == ["alice.near", "profile", "name"]


class TestExplorer:
    """Tests for Explorer against a mocked reader."""

    @pytest.fixture
    def reader(self):
        reader = MagicMock(spec=KeyValueReader)
        reader.social_keys = AsyncMock()
        reader.social_get = AsyncMock()
        reader.kv_get = AsyncMock()
        return reader

    @pytest.mark.asyncio
    async def test_empty_listing_skips_value_fetch(self, reader):
        reader.social_keys.return_value = {}
        view = await Explorer(reader).explore("nobody.near/*")

        assert view.empty
        assert view.nodes == []
        reader.social_get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_explore_builds_second_level_nodes(self, reader):
        reader.social_keys.return_value = {"alice.near": {"profile": {}, "graph": {}, "about": True}}
        reader.social_get.return_value = {"alice.near": {"about": "hi"}}

        view = await Explorer(reader, contract_id="contextual.near").explore("alice.near/*")

        reader.social_keys.assert_awaited_once_with(["alice.near/*"], contract_id="contextual.near")
        reader.social_get.assert_awaited_once_with(["alice.near/*"], contract_id="contextual.near")
        assert [n.name for n in view.nodes] == ["profile", "graph", "about"]
        assert view.find("profile").is_branch
        assert not view.find("about").is_branch
        assert not view.find("profile").loaded
        assert view.values == {"alice.near": {"about": "hi"}}
        assert view.breadcrumb == ["alice.near"]

    @pytest.mark.asyncio
    async def test_expand_fetches_once(self, reader):
        reader.social_keys.return_value = {
            "alice.near": {"profile": {"name": True, "image": {}}}
        }
        node = ExplorerNode("alice.near", "profile", "profile", {})
        explorer = Explorer(reader)

        children = await explorer.expand(node)

        reader.social_keys.assert_awaited_once_with(["alice.near/profile/*"], contract_id="contextual.near")
        assert [c.path for c in children] == ["profile/name", "profile/image"]
        assert children[1].is_branch and not children[1].loaded

        await explorer.expand(node)
        assert reader.social_keys.await_count == 1

    @pytest.mark.asyncio
    async def test_expand_leaf_is_noop(self, reader):
        leaf = ExplorerNode("alice.near", "name", "profile/name", True)
        assert await Explorer(reader).expand(leaf) == []
        reader.social_keys.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recursive_listing_preloads_children(self, reader):
        reader.social_keys.return_value = {
            "alice.near": {"graph": {"follow": {"bob.near": True}}}
        }
        reader.social_get.return_value = {}

        view = await Explorer(reader).explore("alice.near/**")
        graph = view.find("graph")

        assert graph.loaded
        assert [n.path for n in view.walk()] == ["graph", "graph/follow", "graph/follow/bob.near"]
        assert graph.children[0].children[0].is_account
        await Explorer(reader).expand(graph)
        assert reader.social_keys.await_count == 1

    @pytest.mark.asyncio
    async def test_key_detail(self, reader):
        reader.kv_get.return_value = None
        assert await Explorer(reader, "c.near").key_detail("alice.near", "profile/name") is None
        reader.kv_get.assert_awaited_once_with("alice.near", "c.near", "profile/name")
