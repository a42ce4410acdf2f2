"""
Integration tests running the SDK against the in-process sandbox API.

Tests cover:
- Social writes through SandboxSubmitter, reads through SocialClient
- KV reads over HTTP
- Explorer against real glob semantics
- FastFS upload round trip
- Sandbox write endpoints
"""

import base64

import httpx
import pytest

from fastdata_sdk.config import CHUNK_SIZE
from fastdata_sdk.explorer import Explorer
from fastdata_sdk.fastfs import SimpleUnit, encode_unit
from fastdata_sdk.models import PostInput, ProfileInput
from fastdata_sdk.reader import KeyValueReader
from fastdata_sdk.social import SocialClient
from fastdata_sdk.upload import FileStatus, UploadCoordinator, plan_uploads
from playground.app import create_app
from playground.config import Settings
from playground.store import FastfsStore, KvStore

BASE_URL = "http://sandbox.test"
CONTRACT = "contextual.near"


@pytest.fixture
def kv():
    return KvStore()


@pytest.fixture
def files():
    return FastfsStore()


@pytest.fixture
def app(kv, files):
    return create_app(kv, files, settings=Settings())


@pytest.fixture
def transport(app):
    return httpx.ASGITransport(app=app)


@pytest.fixture
def reader(transport):
    return KeyValueReader(BASE_URL, transport=transport)


@pytest.fixture
def social(reader):
    return SocialClient(reader)


@pytest.fixture
def alice(app):
    return app.state.submitter.as_signer("alice.near")


@pytest.fixture
def carol(app):
    return app.state.submitter.as_signer("carol.near")


class TestSocialFlow:
    """Write with the sandbox submitter, read back through SocialClient."""

    @pytest.mark.asyncio
    async def test_follow_then_unfollow(self, social, alice, carol):
        async with social:
            assert (await social.get_followers("bob.near")).accounts == []

            await social.submit(social.build_follow("alice.near", "bob.near"), alice)
            await social.submit(social.build_follow("carol.near", "bob.near"), carol)

            followers = await social.get_followers("bob.near")
            assert followers.accounts == ["alice.near", "carol.near"]
            assert followers.count == 2
            assert (await social.get_following("alice.near")).accounts == ["bob.near"]

            await social.submit(social.build_unfollow("alice.near", "bob.near"), alice)
            assert (await social.get_followers("bob.near")).accounts == ["carol.near"]

    @pytest.mark.asyncio
    async def test_profile_round_trip(self, social, alice):
        async with social:
            assert await social.get_profile("alice.near") is None

            tx = social.build_set_profile(
                "alice.near",
                ProfileInput(name="Alice", about="hi", tags=["dev"], linktree={"github": "alice"}),
            )
            await social.submit(tx, alice)

            assert await social.get_profile("alice.near") == {
                "name": "Alice",
                "about": "hi",
                "tags": {"dev": ""},
                "linktree": {"github": "alice"},
            }

    @pytest.mark.asyncio
    async def test_feeds(self, social, alice):
        async with social:
            await social.submit(
                social.build_create_post("alice.near", PostInput(text="Shipping #FastData with @bob.near")),
                alice,
            )

            tagged = await social.get_hashtag_feed("fastdata")
            mentions = await social.get_mentioned_feed("bob.near")
            posts = await social.get_account_feed("alice.near")

        assert [e.account_id for e in tagged] == ["alice.near"]
        assert [e.value["type"] for e in mentions] == ["mention"]
        assert len(posts) == 1
        assert posts[0].block_height == tagged[0].block_height


class TestKvOverHttp:
    """KeyValueReader against the sandbox routes."""

    @pytest.mark.asyncio
    async def test_reads(self, reader, alice):
        await alice.submit(CONTRACT, "__fastdata_kv", {"profile/name": "Alice"}, "1 Tgas")
        await alice.submit(CONTRACT, "__fastdata_kv", {"profile/name": "Alice B"}, "1 Tgas")

        async with reader:
            assert await reader.health()

            entry = await reader.kv_get("alice.near", CONTRACT, "profile/name")
            assert entry.value == "Alice B"

            history = await reader.kv_history("alice.near", CONTRACT, "profile/name", order="asc")
            assert [e.value for e in history] == ["Alice", "Alice B"]

            diff = await reader.kv_diff(
                "alice.near", CONTRACT, "profile/name", history[0].block_height, history[1].block_height
            )
            assert diff.changed

            assert await reader.kv_accounts(CONTRACT, "profile/name") == ["alice.near"]

            results = await reader.kv_batch("alice.near", CONTRACT, ["profile/name", "profile/about"])
            assert [(r.found, r.value) for r in results] == [(True, "Alice B"), (False, None)]

            (projected,) = await reader.kv_query("alice.near", CONTRACT, "profile/", fields="key,value")
            assert projected.key == "profile/name"
            assert projected.block_height == 0

            assert await reader.kv_get("alice.near", CONTRACT, "missing") is None

    @pytest.mark.asyncio
    async def test_explorer(self, reader, alice):
        await alice.submit(
            CONTRACT,
            "__fastdata_kv",
            {"profile/name": "Alice", "profile/image/url": "https://img", "graph/follow/bob.near": ""},
            "1 Tgas",
        )

        async with reader:
            explorer = Explorer(reader, contract_id=CONTRACT)
            view = await explorer.explore("alice.near/*")
            assert sorted(n.name for n in view.nodes) == ["graph", "profile"]

            profile = view.find("profile")
            children = await explorer.expand(profile)
            assert sorted(c.name for c in children) == ["image", "name"]

            empty = await explorer.explore("nobody.near/*")
            assert empty.empty


class TestUploads:
    """FastFS uploads applied by the sandbox and served back."""

    @pytest.mark.asyncio
    async def test_chunked_upload_round_trip(self, app, transport, alice):
        data = bytes(range(256)) * (CHUNK_SIZE * 5 // 2 // 256)
        uploads = plan_uploads(
            "site",
            [("big.bin", data, None), ("index.html", b"<h1>hi</h1>", "text/html")],
        )
        coordinator = UploadCoordinator(alice, account_id="alice.near")

        await coordinator.upload_all(uploads)

        assert [u.status for u in uploads] == [FileStatus.SUCCESS, FileStatus.SUCCESS]
        assert uploads[0].num_parts == 3
        assert uploads[0].url == "https://alice.near.fastfs.io/fastfs.near/site/big.bin"

        async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as client:
            response = await client.get("/v1/fastfs/alice.near/fastfs.near/site/big.bin")
            assert response.status_code == 200
            assert response.content == data
            assert response.headers["content-type"] == "application/octet-stream"

            page = await client.get("/v1/fastfs/alice.near/fastfs.near/site/index.html")
            assert page.text == "<h1>hi</h1>"
            assert page.headers["content-type"].startswith("text/html")

            missing = await client.get("/v1/fastfs/alice.near/fastfs.near/nope.txt")
            assert missing.status_code == 404


class TestSandboxEndpoints:
    """Tests for /v1/sandbox/* write endpoints."""

    @pytest.mark.asyncio
    async def test_kv_write_endpoint(self, transport, kv):
        async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as client:
            response = await client.post(
                "/v1/sandbox/kv",
                json={"signer_id": "dave.near", "args": {"profile/name": "Dave", "profile/about": None}},
            )
            assert response.status_code == 200
            body = response.json()
            assert body["block_height"] == kv.block_height

            health = await client.get("/health")
            assert health.json()["status"] == "ok"

        assert kv.get("dave.near", CONTRACT, "profile/name").tx_hash == body["tx_hash"]
        assert kv.get("dave.near", CONTRACT, "profile/about").is_tombstone

    @pytest.mark.asyncio
    async def test_fastfs_write_endpoint(self, transport, files):
        payload = encode_unit(SimpleUnit("notes.txt", "text/plain", b"notes"))
        async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as client:
            response = await client.post(
                "/v1/sandbox/fastfs",
                json={"signer_id": "erin.near", "payload_base64": base64.b64encode(payload).decode()},
            )
            assert response.status_code == 200

            bad = await client.post("/v1/sandbox/fastfs", json={"payload_base64": "AAEC"})
            assert bad.status_code == 400

            not_base64 = await client.post("/v1/sandbox/fastfs", json={"payload_base64": "!!"})
            assert not_base64.status_code == 400

        assert files.get("erin.near", "fastfs.near", "notes.txt").content == b"notes"
