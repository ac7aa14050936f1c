"""
SceneSync dev store - a local emulator of the remote JSON store.

Implements only the Realtime Database REST subset the worker uses:
- Connection probe on /projects/.json
- Snapshot read and replace on /projects/{id}/datamodel.json
- Batch writes and key-ordered reads on /projects/{id}/changes

Usage:
    python -m scenesync.devstore
    SCENESYNC_REMOTE_URL=http://127.0.0.1:9000 python -m scenesync.main
"""

from .app import create_app
from .config import Settings
from .store import JsonStore

__all__ = ["JsonStore", "Settings", "create_app"]
