"""Backend-level constants shared across modules: attribute names and legal bounds."""
from __future__ import annotations


class QUEUE_ATTRIBUTE:
    VISIBILITY_TIMEOUT = "VisibilityTimeout"
    MESSAGE_RETENTION_PERIOD = "MessageRetentionPeriod"


class SYSTEM_ATTRIBUTE:
    SENT_TIMESTAMP = "SentTimestamp"
    APPROXIMATE_RECEIVE_COUNT = "ApproximateReceiveCount"
    APPROXIMATE_FIRST_RECEIVE_TIMESTAMP = "ApproximateFirstReceiveTimestamp"


class MESSAGE_ATTRIBUTE:
    CREATED_AT = "CreatedAt"
    CLIENT_MESSAGE_ID = "ClientMessageId"


MIN_VISIBILITY_TIMEOUT_SECONDS = 1
MAX_VISIBILITY_TIMEOUT_SECONDS = 43_200  # 12h
DEFAULT_VISIBILITY_TIMEOUT_SECONDS = 30

MIN_MESSAGE_RETENTION_SECONDS = 60
MAX_MESSAGE_RETENTION_SECONDS = 1_209_600  # 14d
DEFAULT_MESSAGE_RETENTION_SECONDS = 345_600  # 4d, backend default when unset

DEFAULT_MAX_RECEIVE_COUNT = 3

# requeued ids remembered locally; older ones fall back to the backend receive count
MAX_CARRIED_ATTEMPTS = 10_000
