"""Interceptor middleware for RPC servers and clients: recovery, retry, request tags, validation and tracing."""

__version__ = "0.1.0"

__all__ = [
    "backoffutils",
    "context",
    "fieldextractor",
    "metautils",
    "recovery",
    "retry",
    "retry_options",
    "status",
    "stream",
    "tags",
    "tracing",
    "tracing_ids",
    "tracing_metadata",
    "validator",
]