"""Batch and external move aggregation."""
from src.ledger.batch_ledger import aggregate_by_work_order, aggregate_stages, dispatchable_batches

__all__ = ["aggregate_by_work_order", "aggregate_stages", "dispatchable_batches"]
