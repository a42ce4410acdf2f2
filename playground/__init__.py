"""
FastData Sandbox - in-memory FastData API.

A local stand-in for a FastData API server:
- Serves /v1/kv/* and /v1/social/* from an in-memory KV history
- Applies __fastdata_kv and __fastdata_fastfs payloads in process
- Reassembles chunked FastFS uploads and serves the files

Usage:
    python -m playground

Or from tests:
    >>> app = create_app(store)
    >>> transport = httpx.ASGITransport(app=app)
"""

from .store import FastfsStore, KvStore, StoredFile
from .submitter import SandboxSubmitter

__all__ = ["KvStore", "FastfsStore", "StoredFile", "SandboxSubmitter"]
