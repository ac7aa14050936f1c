"""
SceneSync - Change capture and reconciliation between a live scene tree and
a remote JSON store.

This package keeps an editing session's scene tree and a Firebase-style
Realtime Database in step:
- Host notifications are filtered, deduplicated and coalesced per path
- Settled changes are pushed in batches under strictly increasing keys
- Recent remote batches are pulled and applied in timestamp order

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │  Host tree  │────▶│   Change    │────▶│ Pending change  │
    │  (events)   │     │   capture   │     │      set        │
    └──────▲──────┘     └─────────────┘     └────────┬────────┘
           │                                         │ tick
           │                                         ▼
    ┌──────┴──────┐     ┌─────────────┐     ┌─────────────────┐
    │ Reconciler  │◀────│   Remote    │◀───▶│ Batch scheduler │
    │ (watermark) │pull │   gateway   │push │                 │
    └─────────────┘     └──────┬──────┘     └─────────────────┘
                               │
                               ▼
                  ┌─────────────────────────┐
                  │ Remote JSON store       │
                  │ /projects/{id}/changes  │
                  │ /projects/{id}/datamodel│
                  └─────────────────────────┘

Invariants:
    - A path is an entity's identity; renames and moves are delete + add
    - Only settled changes are pushed, and only confirmed pushes leave the
      pending set
    - Remote entries at or below the watermark are never applied
    - No failure in capture, push or pull terminates the worker

How to change safely:
    - Wire field names are shared with other clients; add, never rename
    - New value types need an encoder and a decoder in serialize.codec
    - New host classes need an entry in host.classes
"""

from ._version import __version__

__all__ = ["__version__"]
