"""
FastData Test Suite.

This package contains:
- unit/: Unit tests (no network, no server)
- integration/: Integration tests (mocked transports, in-process sandbox)
- e2e/: End-to-end tests (running sandbox API)
"""
