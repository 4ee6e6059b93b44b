"""Batch fetch orchestration and run drivers."""

from chainwatch.orchestration.batch import BatchFetcher
from chainwatch.orchestration.expiry import select_expiry
from chainwatch.orchestration.runner import BatchSummary, ChainRunner, SingleAnalysis

__all__ = ["BatchFetcher", "BatchSummary", "ChainRunner", "SingleAnalysis", "select_expiry"]
