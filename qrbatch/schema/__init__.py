"""Schema package exports."""

from .batch import BatchItem, BatchJob

__all__ = ["BatchItem", "BatchJob"]
