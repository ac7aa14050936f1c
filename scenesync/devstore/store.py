"""
In-memory JSON document tree.

Models the subset of Realtime Database semantics the worker relies on:
every node is addressed by a slash-separated path, writing null removes a
node, and empty parents disappear with their last child.

Invariants:
    - Stored values are JSON round-tripped copies, never caller objects
    - A path that holds nothing reads as None
"""

from __future__ import annotations

import asyncio
import copy
import json
from typing import Any, Dict, List, Optional, Tuple


def _segments(path: str) -> List[str]:
    return [part for part in path.strip("/").split("/") if part]


def key_order(key: str) -> Tuple[int, float, str]:
    """Sort key for child keys: numeric keys first, numerically, then strings."""
    try:
        return (0, float(key), key)
    except ValueError:
        return (1, 0.0, key)


class JsonStore:
    """Path-addressed JSON tree guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._root: Dict[str, Any] = {}
        self._lock = asyncio.Lock()
        self.writes = 0

    async def get(self, path: str) -> Any:
        async with self._lock:
            node: Any = self._root
            for part in _segments(path):
                if not isinstance(node, dict) or part not in node:
                    return None
                node = node[part]
            if node == {}:
                return None
            return copy.deepcopy(node)

    async def put(self, path: str, value: Any) -> Any:
        """Replace the node at path; None deletes it."""
        parts = _segments(path)
        if not parts:
            raise ValueError("Cannot write the root node")
        value = json.loads(json.dumps(value))

        async with self._lock:
            self.writes += 1
            if value is None or value == {}:
                self._delete(parts)
                return None

            node = self._root
            for part in parts[:-1]:
                child = node.get(part)
                if not isinstance(child, dict):
                    child = {}
                    node[part] = child
                node = child
            node[parts[-1]] = value
            return copy.deepcopy(value)

    def _delete(self, parts: List[str]) -> None:
        trail: List[Tuple[Dict[str, Any], str]] = []
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                return
            trail.append((node, part))
            node = child
        node.pop(parts[-1], None)
        for parent, part in reversed(trail):
            if parent[part]:
                break
            del parent[part]

    async def last_children(self, path: str, limit: Optional[int]) -> Any:
        """Children of a node ordered by key, keeping only the last `limit`."""
        node = await self.get(path)
        if not isinstance(node, dict):
            return node
        keys = sorted(node, key=key_order)
        if limit is not None:
            keys = keys[-limit:] if limit > 0 else []
        return {key: node[key] for key in keys} or None
