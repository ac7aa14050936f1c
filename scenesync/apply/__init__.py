"""
Remote change application: watermark-ordered reconciliation of pulled
batches into the host tree.
"""

from .reconciler import ReconcileReport, Reconciler

__all__ = ["ReconcileReport", "Reconciler"]
