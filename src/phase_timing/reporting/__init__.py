"""Reporting sinks that consume completion records."""

from phase_timing.reporting.es_sink import ElasticsearchSink
from phase_timing.reporting.sinks import CollectingSink, LogSink, ReportingSink

__all__ = [
    "ReportingSink",
    "LogSink",
    "CollectingSink",
    "ElasticsearchSink",
]
