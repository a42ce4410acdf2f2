"""
KV reader for the FastData HTTP API.

This module provides KeyValueReader, a thin async wrapper over the read
endpoints of a FastData API server:
- Point lookups, prefix queries, history, timeline and diffs
- Reverse and by-key scans across writers
- Batch lookups with per-key results
- Social tree reads (get/keys) and index reads
- Health checks

Example:
    >>> async with KeyValueReader("http://localhost:3001") as reader:
    ...     entry = await reader.kv_get("alice.near", "contextual.near", "profile/name")

Invariants:
    - No caching: every call is one HTTP request
    - Every request uses the same fixed timeout
    - Non-2xx, timeout and connection failures raise TransportError,
      except health() which returns False
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .errors import TransportError
from .models import FollowResponse, IndexEntry, KvBatchResult, KvDiff, KvEntry, SocialTree

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def _params(**values: Any) -> Dict[str, str]:
    """Drop unset values and render the rest as query strings."""
    params: Dict[str, str] = {}
    for name, value in values.items():
        if value is None or value is False or value == "":
            continue
        if value is True:
            params[name] = "true"
        else:
            params[name] = str(value)
    return params


def _entries(data: Any) -> List[KvEntry]:
    if not isinstance(data, dict):
        return []
    return [KvEntry.from_dict(e) for e in data.get("entries") or []]


class KeyValueReader:
    """Read client for the FastData KV and social API.

    Example:
        >>> reader = KeyValueReader("https://fastdata.example", timeout=10.0)
        >>> accounts = await reader.kv_accounts("contextual.near", "profile/name")
        >>> await reader.close()
    """

    def __init__(
        self,
        api_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize reader.

        Args:
            api_url: Base URL of the FastData API
            timeout: Per-request timeout in seconds
            client: Optional pre-built HTTP client (not closed by this reader)
            transport: Optional transport for a reader-owned client (tests)
        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(
            base_url=self.api_url,
            timeout=httpx.Timeout(timeout),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client if this reader created it."""
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> KeyValueReader:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    async def _fetch_json(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Issue one request and decode its JSON body.

        Raises:
            TransportError: On timeout, connection failure, non-2xx status
                or a body that is not JSON
        """
        url = f"{self.api_url}{path}"
        try:
            response = await self._http.request(
                method,
                url,
                params=params,
                json=body,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"FastData API timeout after {self.timeout}s: {method} {path}")
            raise TransportError(
                f"FastData API timed out after {self.timeout}s",
                url=url,
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"FastData API request failed: {method} {path}: {e}")
            raise TransportError(f"FastData API request failed: {e}", url=url) from e

        if not response.is_success:
            text = response.text
            raise TransportError(
                f"FastData API {response.status_code}: {text or response.reason_phrase}",
                status=response.status_code,
                body=text,
                url=url,
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"FastData API returned a non-JSON body ({response.status_code})",
                status=response.status_code,
                body=response.text,
                url=url,
            ) from e

    # -------------------------------------------------------------------------
    # KV reads
    # -------------------------------------------------------------------------

    async def kv_get(
        self,
        predecessor_id: str,
        current_account_id: str,
        key: str,
        fields: Optional[str] = None,
    ) -> KvEntry | None:
        """GET /v1/kv/get - latest entry for one key, None if never written."""
        params = _params(
            predecessor_id=predecessor_id,
            current_account_id=current_account_id,
            key=key,
            fields=fields,
        )
        data = await self._fetch_json("GET", "/v1/kv/get", params=params)
        if not data:
            return None
        return KvEntry.from_dict(data)

    async def kv_query(
        self,
        predecessor_id: str,
        current_account_id: str,
        key_prefix: Optional[str] = None,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        exclude_null: bool = False,
        fields: Optional[str] = None,
        format: Optional[str] = None,
    ) -> List[KvEntry]:
        """GET /v1/kv/query - latest entries under a key prefix."""
        params = _params(
            predecessor_id=predecessor_id,
            current_account_id=current_account_id,
            key_prefix=key_prefix,
            limit=limit,
            offset=offset,
            exclude_null=exclude_null,
            fields=fields,
            format=format,
        )
        return _entries(await self._fetch_json("GET", "/v1/kv/query", params=params))

    async def kv_history(
        self,
        predecessor_id: str,
        current_account_id: str,
        key: str,
        *,
        limit: Optional[int] = None,
        order: Optional[str] = None,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
        fields: Optional[str] = None,
    ) -> List[KvEntry]:
        """GET /v1/kv/history - every write of one key, tombstones included."""
        params = _params(
            predecessor_id=predecessor_id,
            current_account_id=current_account_id,
            key=key,
            limit=limit,
            order=order,
            from_block=from_block,
            to_block=to_block,
            fields=fields,
        )
        return _entries(await self._fetch_json("GET", "/v1/kv/history", params=params))

    async def kv_reverse(
        self,
        current_account_id: str,
        key: str,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        exclude_null: bool = False,
        fields: Optional[str] = None,
    ) -> List[KvEntry]:
        """GET /v1/kv/reverse - latest entries for one key across all writers."""
        params = _params(
            current_account_id=current_account_id,
            key=key,
            limit=limit,
            offset=offset,
            exclude_null=exclude_null,
            fields=fields,
        )
        return _entries(await self._fetch_json("GET", "/v1/kv/reverse", params=params))

    async def kv_by_key(
        self,
        key: str,
        *,
        current_account_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        fields: Optional[str] = None,
    ) -> List[KvEntry]:
        """GET /v1/kv/by-key - latest entries for one key, optionally per contract."""
        params = _params(
            key=key,
            current_account_id=current_account_id,
            limit=limit,
            offset=offset,
            fields=fields,
        )
        return _entries(await self._fetch_json("GET", "/v1/kv/by-key", params=params))

    async def kv_batch(
        self,
        predecessor_id: str,
        current_account_id: str,
        keys: List[str],
    ) -> List[KvBatchResult]:
        """POST /v1/kv/batch - one result per requested key.

        A key that fails server-side comes back with found=False and an
        error; the call itself does not raise.
        """
        data = await self._fetch_json(
            "POST",
            "/v1/kv/batch",
            body={
                "predecessor_id": predecessor_id,
                "current_account_id": current_account_id,
                "keys": list(keys),
            },
        )
        results = data.get("results") if isinstance(data, dict) else None
        return [KvBatchResult.from_dict(r) for r in results or []]

    async def kv_accounts(
        self,
        current_account_id: str,
        key: str,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        exclude_null: bool = False,
    ) -> List[str]:
        """GET /v1/kv/accounts - distinct writers of a key."""
        params = _params(
            current_account_id=current_account_id,
            key=key,
            limit=limit,
            offset=offset,
            exclude_null=exclude_null,
        )
        data = await self._fetch_json("GET", "/v1/kv/accounts", params=params)
        if not isinstance(data, dict):
            return []
        # Paginated servers answer {data: [...], meta: {...}}
        return list(data.get("accounts") or data.get("data") or [])

    async def kv_diff(
        self,
        predecessor_id: str,
        current_account_id: str,
        key: str,
        block_height_a: int,
        block_height_b: int,
        fields: Optional[str] = None,
    ) -> KvDiff:
        """GET /v1/kv/diff - a key's values as of two block heights."""
        params = _params(
            predecessor_id=predecessor_id,
            current_account_id=current_account_id,
            key=key,
            block_height_a=block_height_a,
            block_height_b=block_height_b,
            fields=fields,
        )
        data = await self._fetch_json("GET", "/v1/kv/diff", params=params)
        return KvDiff.from_dict(data or {})

    async def kv_timeline(
        self,
        predecessor_id: str,
        current_account_id: str,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        order: Optional[str] = None,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
        fields: Optional[str] = None,
    ) -> List[KvEntry]:
        """GET /v1/kv/timeline - all writes by one account to one contract."""
        params = _params(
            predecessor_id=predecessor_id,
            current_account_id=current_account_id,
            limit=limit,
            offset=offset,
            order=order,
            from_block=from_block,
            to_block=to_block,
            fields=fields,
        )
        return _entries(await self._fetch_json("GET", "/v1/kv/timeline", params=params))

    async def health(self) -> bool:
        """GET /health - True on 2xx, False on any failure."""
        try:
            response = await self._http.get(f"{self.api_url}/health", timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.debug(f"Health check failed: {e}")
            return False
        return response.is_success

    # -------------------------------------------------------------------------
    # Social reads
    # -------------------------------------------------------------------------

    async def social_get(
        self,
        keys: List[str],
        *,
        contract_id: Optional[str] = None,
        return_deleted: Optional[bool] = None,
        with_block_height: Optional[bool] = None,
    ) -> SocialTree:
        """POST /v1/social/get - values matching glob patterns as a nested tree."""
        body: Dict[str, Any] = {"keys": list(keys)}
        if contract_id:
            body["contract_id"] = contract_id
        options: Dict[str, Any] = {}
        if return_deleted is not None:
            options["return_deleted"] = return_deleted
        if with_block_height is not None:
            options["with_block_height"] = with_block_height
        if options:
            body["options"] = options
        return await self._fetch_json("POST", "/v1/social/get", body=body) or {}

    async def social_keys(
        self,
        keys: List[str],
        *,
        contract_id: Optional[str] = None,
        return_type: Optional[str] = None,
        return_deleted: Optional[bool] = None,
        values_only: Optional[bool] = None,
    ) -> SocialTree:
        """POST /v1/social/keys - key listing matching glob patterns."""
        body: Dict[str, Any] = {"keys": list(keys)}
        if contract_id:
            body["contract_id"] = contract_id
        options: Dict[str, Any] = {}
        if return_type is not None:
            options["return_type"] = return_type
        if return_deleted is not None:
            options["return_deleted"] = return_deleted
        if values_only is not None:
            options["values_only"] = values_only
        if options:
            body["options"] = options
        return await self._fetch_json("POST", "/v1/social/keys", body=body) or {}

    async def social_index(
        self,
        action: str,
        key: str,
        *,
        contract_id: Optional[str] = None,
        account_id: Optional[str] = None,
        limit: Optional[int] = None,
        from_index: Optional[int] = None,
        order: Optional[str] = None,
    ) -> List[IndexEntry]:
        """GET /v1/social/index - index entries for (action, key)."""
        params = _params(
            action=action,
            key=key,
            contract_id=contract_id,
            account_id=account_id,
            limit=limit,
            order=order,
        )
        if from_index is not None:
            params["from"] = str(from_index)
        data = await self._fetch_json("GET", "/v1/social/index", params=params)
        if not isinstance(data, dict):
            return []
        return [IndexEntry.from_dict(e) for e in data.get("entries") or []]

    async def social_profile(self, account_id: str, contract_id: Optional[str] = None) -> Any:
        """GET /v1/social/profile - assembled profile tree, None if absent."""
        params = _params(account_id=account_id, contract_id=contract_id)
        return await self._fetch_json("GET", "/v1/social/profile", params=params)

    async def social_follows(
        self,
        kind: str,
        account_id: str,
        *,
        contract_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> FollowResponse:
        """GET /v1/social/followers or /v1/social/following."""
        if kind not in ("followers", "following"):
            raise ValueError(f"Invalid follow list kind: {kind}")
        params = _params(account_id=account_id, contract_id=contract_id, limit=limit, offset=offset)
        data = await self._fetch_json("GET", f"/v1/social/{kind}", params=params)
        return FollowResponse.from_dict(data if isinstance(data, dict) else {})

    async def social_account_feed(
        self,
        account_id: str,
        *,
        contract_id: Optional[str] = None,
        limit: Optional[int] = None,
        from_index: Optional[int] = None,
        order: Optional[str] = None,
        include_replies: bool = False,
    ) -> List[IndexEntry]:
        """GET /v1/social/feed/account - posts written by one account."""
        params = _params(
            account_id=account_id,
            contract_id=contract_id,
            limit=limit,
            order=order,
            include_replies=include_replies,
        )
        if from_index is not None:
            params["from"] = str(from_index)
        data = await self._fetch_json("GET", "/v1/social/feed/account", params=params)
        if not isinstance(data, dict):
            return []
        return [IndexEntry.from_dict(p) for p in data.get("posts") or []]
