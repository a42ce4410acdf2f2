"""
Sandbox API routes.

Serves the FastData read surface (/v1/kv/*, /v1/social/*) from the
in-memory stores, plus sandbox-only write endpoints that apply
__fastdata_kv and __fastdata_fastfs payloads without a wallet.
"""

import base64
import binascii
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field

from fastdata_sdk.config import FASTFS_METHOD, KV_METHOD
from fastdata_sdk.errors import FastDataError, ValidationError
from fastdata_sdk.models import KvEntry

from .config import Settings
from .store import FastfsStore, KvStore
from .submitter import SandboxSubmitter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["FastData"])


# =============================================================================
# Request/Response Models
# =============================================================================


class KvBatchRequest(BaseModel):
    """Look up several keys of one writer."""
    predecessor_id: str
    current_account_id: str
    keys: list[str] = Field(..., description="Keys to look up")


class SocialGetOptions(BaseModel):
    return_deleted: bool = False
    with_block_height: bool = False


class SocialGetRequest(BaseModel):
    """Fetch values matching glob patterns."""
    keys: list[str] = Field(..., description="Patterns such as alice.near/profile/**")
    contract_id: Optional[str] = None
    options: SocialGetOptions = Field(default_factory=SocialGetOptions)


class SocialKeysOptions(BaseModel):
    return_type: Optional[str] = None
    return_deleted: bool = False
    values_only: bool = False


class SocialKeysRequest(BaseModel):
    """List keys matching glob patterns."""
    keys: list[str] = Field(..., description="Patterns such as alice.near/*")
    contract_id: Optional[str] = None
    options: SocialKeysOptions = Field(default_factory=SocialKeysOptions)


class SandboxKvRequest(BaseModel):
    """Apply a __fastdata_kv payload."""
    args: dict[str, Optional[str]] = Field(..., description="Key -> value (null deletes)")
    signer_id: Optional[str] = None
    contract_id: Optional[str] = None


class SandboxFastfsRequest(BaseModel):
    """Apply one Borsh-encoded FastFS unit."""
    payload_base64: str = Field(..., description="Base64 of the Borsh bytes")
    signer_id: Optional[str] = None
    contract_id: Optional[str] = None


class SandboxWriteResponse(BaseModel):
    tx_hash: str
    block_height: int


# =============================================================================
# Dependencies
# =============================================================================


def get_kv(request: Request) -> KvStore:
    """Get KV store from app state."""
    return request.app.state.kv


def get_files(request: Request) -> FastfsStore:
    """Get FastFS store from app state."""
    return request.app.state.files


def get_settings(request: Request) -> Settings:
    """Get settings from app state."""
    return request.app.state.settings


def _project(entry: KvEntry, fields: Optional[str]) -> dict[str, Any]:
    data = entry.to_dict()
    if not fields:
        return data
    wanted = {f.strip() for f in fields.split(",") if f.strip()}
    return {k: v for k, v in data.items() if k in wanted}


def _entries(entries: list[KvEntry], fields: Optional[str]) -> dict[str, Any]:
    return {"entries": [_project(e, fields) for e in entries]}


# =============================================================================
# KV Endpoints
# =============================================================================


@router.get("/kv/get")
async def kv_get(
    predecessor_id: str,
    current_account_id: str,
    key: str,
    fields: Optional[str] = None,
    kv: KvStore = Depends(get_kv),
):
    """Latest entry for one key (null if never written)."""
    entry = kv.get(predecessor_id, current_account_id, key)
    return _project(entry, fields) if entry else None


@router.get("/kv/query")
async def kv_query(
    predecessor_id: str,
    current_account_id: str,
    key_prefix: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    exclude_null: bool = False,
    fields: Optional[str] = None,
    kv: KvStore = Depends(get_kv),
):
    entries = kv.query(
        predecessor_id,
        current_account_id,
        key_prefix,
        limit=limit,
        offset=offset,
        exclude_null=exclude_null,
    )
    return _entries(entries, fields)


@router.get("/kv/history")
async def kv_history(
    predecessor_id: str,
    current_account_id: str,
    key: str,
    limit: Optional[int] = Query(None, ge=0),
    order: str = "desc",
    from_block: Optional[int] = None,
    to_block: Optional[int] = None,
    fields: Optional[str] = None,
    kv: KvStore = Depends(get_kv),
):
    entries = kv.history(
        predecessor_id,
        current_account_id,
        key,
        limit=limit,
        order=order,
        from_block=from_block,
        to_block=to_block,
    )
    return _entries(entries, fields)


@router.get("/kv/reverse")
async def kv_reverse(
    current_account_id: str,
    key: str,
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    exclude_null: bool = False,
    fields: Optional[str] = None,
    kv: KvStore = Depends(get_kv),
):
    entries = kv.reverse(current_account_id, key, limit=limit, offset=offset, exclude_null=exclude_null)
    return _entries(entries, fields)


@router.get("/kv/by-key")
async def kv_by_key(
    key: str,
    current_account_id: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    fields: Optional[str] = None,
    kv: KvStore = Depends(get_kv),
):
    entries = kv.by_key(key, current_account_id=current_account_id, limit=limit, offset=offset)
    return _entries(entries, fields)


@router.post("/kv/batch")
async def kv_batch(request: KvBatchRequest, kv: KvStore = Depends(get_kv)):
    results = kv.batch(request.predecessor_id, request.current_account_id, request.keys)
    return {
        "results": [
            {"key": r.key, "found": r.found, "value": r.value, **({"error": r.error} if r.error else {})}
            for r in results
        ]
    }


@router.get("/kv/accounts")
async def kv_accounts(
    current_account_id: str,
    key: str,
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    exclude_null: bool = False,
    kv: KvStore = Depends(get_kv),
):
    accounts, has_more = kv.accounts(
        current_account_id, key, limit=limit, offset=offset, exclude_null=exclude_null
    )
    return {"data": accounts, "meta": {"has_more": has_more}}


@router.get("/kv/diff")
async def kv_diff(
    predecessor_id: str,
    current_account_id: str,
    key: str,
    block_height_a: int,
    block_height_b: int,
    fields: Optional[str] = None,
    kv: KvStore = Depends(get_kv),
):
    a, b = kv.diff(predecessor_id, current_account_id, key, block_height_a, block_height_b)
    return {
        "a": _project(a, fields) if a else None,
        "b": _project(b, fields) if b else None,
    }


@router.get("/kv/timeline")
async def kv_timeline(
    predecessor_id: str,
    current_account_id: str,
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    order: str = "desc",
    from_block: Optional[int] = None,
    to_block: Optional[int] = None,
    fields: Optional[str] = None,
    kv: KvStore = Depends(get_kv),
):
    entries = kv.timeline(
        predecessor_id,
        current_account_id,
        limit=limit,
        offset=offset,
        order=order,
        from_block=from_block,
        to_block=to_block,
    )
    return _entries(entries, fields)


# =============================================================================
# Social Endpoints
# =============================================================================


@router.post("/social/get")
async def social_get(
    request: SocialGetRequest,
    kv: KvStore = Depends(get_kv),
    settings: Settings = Depends(get_settings),
):
    return kv.social_get(
        request.keys,
        request.contract_id or settings.kv_contract_id,
        return_deleted=request.options.return_deleted,
        with_block_height=request.options.with_block_height,
    )


@router.post("/social/keys")
async def social_keys(
    request: SocialKeysRequest,
    kv: KvStore = Depends(get_kv),
    settings: Settings = Depends(get_settings),
):
    return kv.social_keys(
        request.keys,
        request.contract_id or settings.kv_contract_id,
        return_deleted=request.options.return_deleted,
    )


@router.get("/social/profile")
async def social_profile(
    account_id: str,
    contract_id: Optional[str] = None,
    kv: KvStore = Depends(get_kv),
    settings: Settings = Depends(get_settings),
):
    return kv.profile(account_id, contract_id or settings.kv_contract_id)


def _follow_page(accounts: list[str], limit: Optional[int], offset: Optional[int]) -> dict[str, Any]:
    start = offset or 0
    page = accounts[start : start + limit] if limit is not None else accounts[start:]
    return {"accounts": page, "count": len(accounts)}


@router.get("/social/followers")
async def social_followers(
    account_id: str,
    contract_id: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    kv: KvStore = Depends(get_kv),
    settings: Settings = Depends(get_settings),
):
    accounts = kv.followers(account_id, contract_id or settings.kv_contract_id)
    return _follow_page(accounts, limit, offset)


@router.get("/social/following")
async def social_following(
    account_id: str,
    contract_id: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    kv: KvStore = Depends(get_kv),
    settings: Settings = Depends(get_settings),
):
    accounts = kv.following(account_id, contract_id or settings.kv_contract_id)
    return _follow_page(accounts, limit, offset)


@router.get("/social/index")
async def social_index(
    action: str,
    key: str,
    contract_id: Optional[str] = None,
    account_id: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0),
    from_block: Optional[int] = Query(None, alias="from"),
    order: str = "asc",
    kv: KvStore = Depends(get_kv),
    settings: Settings = Depends(get_settings),
):
    entries = kv.index(
        action,
        key,
        contract_id or settings.kv_contract_id,
        account_id=account_id,
        limit=limit,
        from_block=from_block,
        order=order,
    )
    return {"entries": [e.to_dict() for e in entries]}


@router.get("/social/feed/account")
async def social_account_feed(
    account_id: str,
    contract_id: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0),
    from_block: Optional[int] = Query(None, alias="from"),
    order: str = "desc",
    include_replies: bool = False,
    kv: KvStore = Depends(get_kv),
    settings: Settings = Depends(get_settings),
):
    posts = kv.account_feed(
        account_id,
        contract_id or settings.kv_contract_id,
        limit=limit,
        from_block=from_block,
        order=order,
        include_replies=include_replies,
    )
    return {"posts": [p.to_dict() for p in posts]}


# =============================================================================
# FastFS Endpoints
# =============================================================================


@router.get("/fastfs/{account_id}/{contract_id}/{path:path}")
async def fastfs_file(
    account_id: str,
    contract_id: str,
    path: str,
    files: FastfsStore = Depends(get_files),
):
    """Serve a completed upload with its MIME type."""
    stored = files.get(account_id, contract_id, path)
    if stored is None:
        raise HTTPException(status_code=404, detail=f"No file {account_id}/{contract_id}/{path}")
    return Response(content=stored.content, media_type=stored.mime_type)


# =============================================================================
# Sandbox Write Endpoints
# =============================================================================


def _submitter(request: Request, signer_id: Optional[str]) -> SandboxSubmitter:
    submitter: SandboxSubmitter = request.app.state.submitter
    settings: Settings = request.app.state.settings
    return submitter.as_signer(signer_id or settings.default_signer_id)


@router.post("/sandbox/kv", response_model=SandboxWriteResponse)
async def sandbox_kv(body: SandboxKvRequest, request: Request):
    """Apply a __fastdata_kv payload as signer_id."""
    settings: Settings = request.app.state.settings
    submitter = _submitter(request, body.signer_id)
    try:
        tx_hash = await submitter.submit(
            body.contract_id or settings.kv_contract_id, KV_METHOD, body.args, "1 Tgas"
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except FastDataError as e:
        logger.error(f"Sandbox KV write failed: {e}")
        raise HTTPException(status_code=500, detail=e.message)
    return SandboxWriteResponse(tx_hash=tx_hash or "", block_height=submitter.kv.block_height)


@router.post("/sandbox/fastfs", response_model=SandboxWriteResponse)
async def sandbox_fastfs(body: SandboxFastfsRequest, request: Request):
    """Apply one Borsh-encoded FastFS unit as signer_id."""
    settings: Settings = request.app.state.settings
    try:
        payload = base64.b64decode(body.payload_base64, validate=True)
    except binascii.Error as e:
        raise HTTPException(status_code=400, detail=f"Invalid base64 payload: {e}")

    submitter = _submitter(request, body.signer_id)
    try:
        tx_hash = await submitter.submit(
            body.contract_id or settings.fastfs_contract_id, FASTFS_METHOD, payload, "1 Tgas"
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except FastDataError as e:
        logger.error(f"Sandbox FastFS write failed: {e}")
        raise HTTPException(status_code=500, detail=e.message)
    return SandboxWriteResponse(tx_hash=tx_hash or "", block_height=submitter.kv.block_height)
