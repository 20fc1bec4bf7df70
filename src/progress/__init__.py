"""Route progress and bottleneck detection."""
from src.progress.bottleneck import BottleneckDetector, classify_step

__all__ = ["BottleneckDetector", "classify_step"]
