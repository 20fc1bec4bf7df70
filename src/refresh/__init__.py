"""Change notifications and scheduled checks."""
from src.refresh.change_feed import ChangeFeed
from src.refresh.scheduler import OverdueReturnMonitor

__all__ = ["ChangeFeed", "OverdueReturnMonitor"]
