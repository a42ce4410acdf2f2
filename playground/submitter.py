"""
In-process transaction submitter for the sandbox.

SandboxSubmitter implements the SDK's TransactionSubmitter protocol by
applying payloads straight to the sandbox stores instead of signing and
broadcasting them.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import List, Optional, Tuple, Union

from fastdata_sdk.config import FASTFS_METHOD, KV_METHOD
from fastdata_sdk.errors import FastDataError, ValidationError
from fastdata_sdk.fastfs import decode_unit
from fastdata_sdk.models import ActionArgs

from .store import FastfsStore, KvStore

logger = logging.getLogger(__name__)


class SandboxSubmitter:
    """Applies __fastdata_kv and __fastdata_fastfs calls to local stores.

    Attributes:
        kv: KV store receiving __fastdata_kv writes
        files: FastFS store receiving __fastdata_fastfs units
        signer_id: Account every call is attributed to
        calls: (contract_id, method, tx_hash) of each applied call
    """

    def __init__(
        self,
        kv: KvStore,
        files: Optional[FastfsStore] = None,
        signer_id: str = "sandbox.near",
    ) -> None:
        self.kv = kv
        self.files = files if files is not None else FastfsStore()
        self.signer_id = signer_id
        self.calls: List[Tuple[str, str, str]] = []

    def _tx_hash(self, contract_id: str, method: str, payload: bytes) -> str:
        digest = hashlib.sha256()
        for part in (str(len(self.calls)), self.signer_id, contract_id, method):
            digest.update(part.encode())
            digest.update(b"\0")
        digest.update(payload)
        return digest.hexdigest()

    async def submit(
        self,
        contract_id: str,
        method: str,
        payload: Union[ActionArgs, bytes],
        gas: str,
    ) -> Optional[str]:
        """Apply one call and return its transaction hash.

        Raises:
            ValidationError: If the payload does not fit the method
            FastDataError: If the method is not a FastData method
        """
        if method == KV_METHOD:
            if not isinstance(payload, dict):
                raise ValidationError(f"{KV_METHOD} expects a key/value mapping", field_name="payload")
            raw = json.dumps(payload, sort_keys=True).encode()
            tx_hash = self._tx_hash(contract_id, method, raw)
            self.kv.apply(self.signer_id, contract_id, payload, tx_hash=tx_hash)
        elif method == FASTFS_METHOD:
            if not isinstance(payload, (bytes, bytearray)):
                raise ValidationError(f"{FASTFS_METHOD} expects Borsh bytes", field_name="payload")
            unit = decode_unit(bytes(payload))
            tx_hash = self._tx_hash(contract_id, method, bytes(payload))
            self.files.apply(self.signer_id, contract_id, unit, block_height=self.kv.block_height)
        else:
            raise FastDataError(f"Unsupported method: {method}", code="UNSUPPORTED_METHOD")

        self.calls.append((contract_id, method, tx_hash))
        logger.info(f"Sandbox applied {method} from {self.signer_id} to {contract_id}: {tx_hash[:12]}")
        return tx_hash

    def as_signer(self, signer_id: str) -> SandboxSubmitter:
        """A submitter sharing these stores but signing as another account."""
        other = SandboxSubmitter(self.kv, self.files, signer_id)
        other.calls = self.calls
        return other

    def __repr__(self) -> str:
        return f"SandboxSubmitter(signer_id={self.signer_id!r}, calls={len(self.calls)})"
