from .sink import MetricSink, MetricsSnapshot, TrendSummary

__all__ = ["MetricSink", "MetricsSnapshot", "TrendSummary"]
