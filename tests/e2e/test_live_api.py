"""
End-to-end tests against a running sandbox API.

Writes go through /v1/sandbox/*, reads through the SDK.

Usage:
    python -m playground &
    FASTDATA_E2E_TESTS=1 pytest tests/e2e
"""

import base64
import os

import httpx
import pytest

from fastdata_sdk.builders import build_follow_args, build_profile_args
from fastdata_sdk.fastfs import encode_unit
from fastdata_sdk.models import ProfileInput
from fastdata_sdk.reader import KeyValueReader
from fastdata_sdk.social import SocialClient
from fastdata_sdk.upload import encode_file

# Skip if not in E2E mode
E2E_ENABLED = os.environ.get("FASTDATA_E2E_TESTS", "0") == "1"
pytestmark = pytest.mark.skipif(
    not E2E_ENABLED, reason="E2E tests disabled. Set FASTDATA_E2E_TESTS=1 to enable."
)

CONTRACT = "contextual.near"


async def sandbox_write(api_url: str, signer_id: str, args: dict) -> dict:
    async with httpx.AsyncClient(base_url=api_url, timeout=10.0) as client:
        response = await client.post("/v1/sandbox/kv", json={"signer_id": signer_id, "args": args})
        response.raise_for_status()
        return response.json()


class TestLiveApi:
    """SDK reads after sandbox writes."""

    @pytest.mark.asyncio
    async def test_health(self, api_url):
        async with KeyValueReader(api_url) as reader:
            assert await reader.health()

    @pytest.mark.asyncio
    async def test_profile_and_follow(self, api_url, test_account):
        await sandbox_write(
            api_url, test_account, build_profile_args(test_account, ProfileInput(name="E2E", tags=["test"]))
        )
        written = await sandbox_write(api_url, test_account, build_follow_args(test_account, "root.near"))

        async with SocialClient(KeyValueReader(api_url)) as social:
            profile = await social.get_profile(test_account)
            followers = await social.get_followers("root.near")
            entry = await social.reader.kv_get(test_account, CONTRACT, "graph/follow/root.near")

        assert profile == {"name": "E2E", "tags": {"test": ""}}
        assert test_account in followers.accounts
        assert entry.tx_hash == written["tx_hash"]
        assert entry.block_height == written["block_height"]

    @pytest.mark.asyncio
    async def test_fastfs_upload(self, api_url, test_account):
        data = b"e2e" * 1000
        (unit,) = encode_file("e2e/data.bin", data)
        payload = base64.b64encode(encode_unit(unit)).decode()

        async with httpx.AsyncClient(base_url=api_url, timeout=10.0) as client:
            response = await client.post(
                "/v1/sandbox/fastfs", json={"signer_id": test_account, "payload_base64": payload}
            )
            assert response.status_code == 200

            served = await client.get(f"/v1/fastfs/{test_account}/fastfs.near/e2e/data.bin")
            assert served.status_code == 200
            assert served.content == data
