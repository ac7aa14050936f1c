"""
SceneSync Test Suite.

This package contains:
- unit/: Unit tests (in-memory host, no network)
- integration/: Integration tests (worker end to end, dev store over ASGI)
"""
