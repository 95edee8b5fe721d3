"""Batch processing of evidence uploads."""

from .batch import EvidenceBatchProcessor

__all__ = ["EvidenceBatchProcessor"]
