"""Analytics - activity summaries and statistical outlier detection."""

from teleguard.analytics.outliers import OutlierDetector
from teleguard.analytics.patterns import summarize_activity

__all__ = ["OutlierDetector", "summarize_activity"]
