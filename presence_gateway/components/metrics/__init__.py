"""
Metrics components.
"""

from presence_gateway.components.metrics.collector import COUNTERS, MetricsCollector

__all__ = ["COUNTERS", "MetricsCollector"]
