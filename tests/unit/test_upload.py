"""
Unit tests for FastFS upload encoding and coordination.

Tests cover:
- encode_file chunking, nonce and limits
- plan_uploads
- UploadCoordinator ordering, failure handling and progress
"""

import asyncio
import itertools
from unittest.mock import AsyncMock

import pytest

from fastdata_sdk.config import CHUNK_SIZE, FASTFS_METHOD, MAX_FILE_SIZE, ClientSettings
from fastdata_sdk.errors import PathError, SizeError, UploadChunkError
from fastdata_sdk.fastfs import PartialUnit, SimpleUnit, decode_unit, reassemble
from fastdata_sdk.upload import (
    MAX_NONCE,
    NONCE_EPOCH,
    FileStatus,
    UploadCoordinator,
    encode_file,
    plan_uploads,
    upload_nonce,
)


class TestEncodeFile:
    """Tests for encode_file."""

    @pytest.mark.parametrize("size", [0, 1, CHUNK_SIZE])
    def test_small_file_is_one_simple_unit(self, size):
        units = encode_file("a.bin", b"x" * size, "application/x-test")
        assert units == [SimpleUnit("a.bin", "application/x-test", b"x" * size)]

    def test_two_and_a_half_mib(self):
        data = b"y" * (CHUNK_SIZE * 5 // 2)
        units = encode_file("big.bin", data, nonce=1234)
        assert [u.offset for u in units] == [0, 1048576, 2097152]
        assert all(isinstance(u, PartialUnit) for u in units)
        assert {u.nonce for u in units} == {1234}
        assert {u.full_size for u in units} == {len(data)}
        assert [u.size for u in units] == [CHUNK_SIZE, CHUNK_SIZE, CHUNK_SIZE // 2]
        assert reassemble(units) == data

    def test_one_byte_over_chunk_splits(self):
        units = encode_file("a.bin", b"z" * (CHUNK_SIZE + 1), nonce=1)
        assert [u.size for u in units] == [CHUNK_SIZE, 1]

    def test_default_mime_type(self):
        (unit,) = encode_file("a.bin", b"data")
        assert unit.mime_type == "application/octet-stream"

    def test_leading_slash_stripped(self):
        (unit,) = encode_file("/site/index.html", b"<html/>", "text/html")
        assert unit.relative_path == "site/index.html"

    def test_parent_path_rejected(self):
        with pytest.raises(PathError):
            encode_file("../etc/passwd", b"root")

    def test_size_limit(self):
        with pytest.raises(SizeError) as exc_info:
            encode_file("huge.bin", bytes(MAX_FILE_SIZE + 1))
        assert exc_info.value.size == MAX_FILE_SIZE + 1
        assert exc_info.value.limit == MAX_FILE_SIZE

    def test_max_size_allowed(self):
        units = encode_file("max.bin", bytes(MAX_FILE_SIZE), nonce=3)
        assert len(units) == 32
        assert units[-1].offset == 31 * CHUNK_SIZE


class TestNonce:
    """Tests for upload_nonce."""

    def test_offset_from_epoch(self):
        assert upload_nonce(NONCE_EPOCH + 500) == 500

    def test_clamped_to_one(self):
        assert upload_nonce(NONCE_EPOCH - 10) == 1
        assert upload_nonce(NONCE_EPOCH) == 1

    def test_clamped_to_max(self):
        assert upload_nonce(NONCE_EPOCH + 2**40) == MAX_NONCE


class TestPlanUploads:
    """Tests for plan_uploads."""

    def test_paths_and_shared_nonce(self):
        uploads = plan_uploads(
            "/site/",
            [
                ("index.html", b"<html/>", "text/html"),
                ("/assets/big.bin", b"b" * (CHUNK_SIZE + 5), None),
                ("other.bin", b"c" * (CHUNK_SIZE + 9), None),
            ],
            nonce=77,
        )
        assert [u.path for u in uploads] == ["site/index.html", "site/assets/big.bin", "site/other.bin"]
        assert [u.num_parts for u in uploads] == [1, 2, 2]
        assert {u.units[0].nonce for u in uploads[1:]} == {77}
        assert uploads[1].mime_type == "application/octet-stream"
        assert all(u.status == FileStatus.PENDING for u in uploads)

    def test_empty_directory(self):
        (upload,) = plan_uploads("", [("a.txt", b"a", "text/plain")])
        assert upload.path == "a.txt"


class TestUploadCoordinator:
    """Tests for UploadCoordinator."""

    @pytest.fixture
    def submitter(self):
        counter = itertools.count(1)
        submitter = AsyncMock()
        submitter.submit = AsyncMock(side_effect=lambda *args: f"tx{next(counter)}")
        return submitter

    def _three_part_upload(self):
        (upload,) = plan_uploads("", [("f.bin", b"q" * (2 * CHUNK_SIZE + 1), None)], nonce=9)
        return upload

    @pytest.mark.asyncio
    async def test_success_sets_url_and_tx_ids(self, submitter):
        upload = self._three_part_upload()
        coordinator = UploadCoordinator(submitter, account_id="alice.near")

        await coordinator.upload_file(upload)

        assert upload.status == FileStatus.SUCCESS
        assert upload.uploaded_parts == 3
        assert upload.tx_ids == ["tx1", "tx2", "tx3"]
        assert upload.url == "https://alice.near.fastfs.io/fastfs.near/f.bin"
        assert upload.progress == (3, 3, FileStatus.SUCCESS)

    @pytest.mark.asyncio
    async def test_units_submitted_in_offset_order(self, submitter):
        upload = self._three_part_upload()
        await UploadCoordinator(submitter, account_id="alice.near", gas="5 Tgas").upload_file(upload)

        calls = submitter.submit.await_args_list
        assert [c.args[0] for c in calls] == ["fastfs.near"] * 3
        assert [c.args[1] for c in calls] == [FASTFS_METHOD] * 3
        assert [c.args[3] for c in calls] == ["5 Tgas"] * 3
        assert [decode_unit(c.args[2]).offset for c in calls] == [0, CHUNK_SIZE, 2 * CHUNK_SIZE]

    @pytest.mark.asyncio
    async def test_failure_stops_file(self):
        submitter = AsyncMock()
        submitter.submit = AsyncMock(side_effect=["tx1", RuntimeError("wallet rejected"), "tx3"])
        upload = self._three_part_upload()

        await UploadCoordinator(submitter, account_id="alice.near").upload_file(upload)

        assert upload.uploaded_parts == 1
        assert upload.status == FileStatus.ERROR
        assert upload.tx_ids == ["tx1", None]
        assert upload.url is None
        assert submitter.submit.await_count == 2
        assert isinstance(upload.error, UploadChunkError)
        assert upload.error.part_index == 1
        assert upload.error.offset == CHUNK_SIZE
        assert "wallet rejected" in str(upload.error)

    @pytest.mark.asyncio
    async def test_reupload_after_failure_starts_over(self):
        submitter = AsyncMock()
        submitter.submit = AsyncMock(side_effect=["tx1", RuntimeError("wallet rejected"), "r1", "r2", "r3"])
        upload = self._three_part_upload()
        seen = []
        coordinator = UploadCoordinator(
            submitter,
            account_id="alice.near",
            on_progress=lambda u: seen.append(u.progress),
        )

        await coordinator.upload_file(upload)
        assert upload.status == FileStatus.ERROR
        seen.clear()

        await coordinator.upload_file(upload)

        assert seen == [
            (0, 3, FileStatus.UPLOADING),
            (1, 3, FileStatus.UPLOADING),
            (2, 3, FileStatus.UPLOADING),
            (3, 3, FileStatus.SUCCESS),
        ]
        assert upload.tx_ids == ["r1", "r2", "r3"]
        assert upload.error is None
        assert upload.url == "https://alice.near.fastfs.io/fastfs.near/f.bin"
        assert [decode_unit(c.args[2]).offset for c in submitter.submit.await_args_list[2:]] == [
            0,
            CHUNK_SIZE,
            2 * CHUNK_SIZE,
        ]

    @pytest.mark.asyncio
    async def test_failing_progress_callback_does_not_break_upload(self, submitter):
        def explode(upload):
            if upload.path == "a.txt":
                raise RuntimeError("observer bug")

        uploads = plan_uploads("", [("a.txt", b"a", None), ("b.txt", b"b", None)])
        coordinator = UploadCoordinator(submitter, account_id="alice.near", on_progress=explode)

        results = await coordinator.upload_all(uploads)

        assert [u.status for u in results] == [FileStatus.SUCCESS, FileStatus.SUCCESS]
        assert results[0].url == "https://alice.near.fastfs.io/fastfs.near/a.txt"

    @pytest.mark.asyncio
    async def test_failure_does_not_affect_siblings(self):
        async def submit(contract_id, method, payload, gas):
            await asyncio.sleep(0)
            if decode_unit(payload).relative_path == "bad.txt":
                raise RuntimeError("boom")
            return "ok"

        submitter = AsyncMock()
        submitter.submit = AsyncMock(side_effect=submit)
        uploads = plan_uploads(
            "",
            [
                ("good.txt", b"good", "text/plain"),
                ("bad.txt", b"bad", "text/plain"),
                ("big.bin", b"b" * (CHUNK_SIZE + 1), None),
            ],
        )

        results = await UploadCoordinator(submitter, account_id="bob.near").upload_all(uploads)

        assert [u.status for u in results] == [FileStatus.SUCCESS, FileStatus.ERROR, FileStatus.SUCCESS]
        assert results[2].uploaded_parts == 2

    @pytest.mark.asyncio
    async def test_progress_callback(self, submitter):
        seen = []
        upload = self._three_part_upload()
        coordinator = UploadCoordinator(
            submitter,
            account_id="alice.near",
            on_progress=lambda u: seen.append(u.progress),
        )

        await coordinator.upload_file(upload)

        assert seen == [
            (0, 3, FileStatus.UPLOADING),
            (1, 3, FileStatus.UPLOADING),
            (2, 3, FileStatus.UPLOADING),
            (3, 3, FileStatus.SUCCESS),
        ]

    @pytest.mark.asyncio
    async def test_custom_gateway_and_contract(self, submitter):
        (upload,) = plan_uploads("docs", [("a.md", b"# hi", "text/markdown")])
        coordinator = UploadCoordinator(
            submitter,
            account_id="carol.near",
            contract_id="files.near",
            gateway="fastfs.test",
        )
        await coordinator.upload_file(upload)
        assert upload.url == "https://carol.near.fastfs.test/files.near/docs/a.md"

    @pytest.mark.asyncio
    async def test_from_settings(self, submitter):
        settings = ClientSettings(fastfs_contract_id="fs.test", fastfs_gas="2 Tgas", fastfs_gateway="gw.test")
        coordinator = UploadCoordinator.from_settings(submitter, settings, account_id="dave.near")
        (upload,) = plan_uploads("", [("x.txt", b"x", None)])

        await coordinator.upload_file(upload)

        assert upload.url == "https://dave.near.gw.test/fs.test/x.txt"
        assert submitter.submit.await_args.args[0] == "fs.test"
        assert submitter.submit.await_args.args[3] == "2 Tgas"
