"""
Exceptions raised across the worker fleet.

The worker loop maps each of these onto an acknowledgment policy: a
PoisonMessageError is acknowledged and dropped, everything else leaves the
lease to expire so the job is delivered again.
"""


class FleetError(Exception):
    """Base class for all worker fleet errors."""


class PoisonMessageError(FleetError):
    """A queue payload that can never be decoded, however often it is retried."""

    def __init__(self, message, payload=None):
        self.payload = payload
        super().__init__(message)


class FetchError(FleetError):
    """The content behind a job's locator could not be retrieved."""

    def __init__(self, message, url=None, status_code=None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class AnalysisError(FleetError):
    """The NLP backend failed on otherwise valid text."""


class QueueTransportError(FleetError):
    """A receive, acknowledge or publish call did not reach the queue."""

    def __init__(self, operation, queue_id, cause=None):
        self.operation = operation
        self.queue_id = queue_id
        self.cause = cause
        super().__init__(f"SQS {operation} failed for queue {queue_id}: {cause}")
