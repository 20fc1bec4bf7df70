"""Record reading and work order state computation."""
from src.query.record_reader import RecordReader

__all__ = ["RecordReader"]
