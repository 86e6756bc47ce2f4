"""Semantic event constants for structured logging.

All log events should use these constants rather than magic strings to ensure
consistency and enable reliable querying and analysis.
"""

# Request lifecycle events
REQUEST_STARTED = "request_started"
REQUEST_COMPLETED = "request_completed"
REQUEST_FAILED = "request_failed"
REQUEST_FINALIZE_FAILED = "request_finalize_failed"

# Phase instrumentation events
PHASE_RECORD_REJECTED = "phase_record_rejected"
PHASE_RECORD_UNBOUND = "phase_record_unbound"
REQUEST_FIELD_UNREADABLE = "request_field_unreadable"

# Reporting events
REPORTING_FAILED = "reporting_failed"
REPORTING_TIMEOUT = "reporting_timeout"

# Elasticsearch sink events
ELASTICSEARCH_CONNECTED = "elasticsearch_connected"
ELASTICSEARCH_CONNECTION_FAILED = "elasticsearch_connection_failed"
ELASTICSEARCH_INDEX_FAILED = "elasticsearch_index_failed"
