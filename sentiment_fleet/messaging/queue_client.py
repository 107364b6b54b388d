"""
Queue client abstraction for the worker fleet.

The worker loop only relies on three operations: a leased ``receive``, an
``acknowledge`` that retires a message, and a ``publish``. Amazon SQS provides
all three through its visibility timeout, so ``SQSQueueClient`` is the
production implementation.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from sentiment_fleet.common.config import (
    MAX_LEASE_DURATION, MAX_RECEIVE_WAIT_SECONDS, MESSAGE_RETENTION_PERIOD
)
from sentiment_fleet.common.exceptions import QueueTransportError

logger = logging.getLogger(__name__)

# Error codes SQS returns for a receipt handle that is no longer current
STALE_RECEIPT_CODES = ('ReceiptHandleIsInvalid', 'InvalidReceiptHandle')
MISSING_QUEUE_CODES = ('AWS.SimpleQueueService.NonExistentQueue', 'QueueDoesNotExist')


def _utcnow():
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Lease:
    """A time-bounded exclusive claim on a received message."""
    receipt_token: str
    expiry: datetime
    message_id: Optional[str] = None

    def is_expired(self, now=None):
        """Check whether the queue may already have handed the message to someone else."""
        now = now or _utcnow()
        return now >= self.expiry

    def remaining(self, now=None):
        """Seconds left on the lease, never negative."""
        now = now or _utcnow()
        return max((self.expiry - now).total_seconds(), 0.0)


@dataclass(frozen=True)
class ReceivedMessage:
    """A raw message body together with the lease that guards it."""
    message_id: str
    body: str
    lease: Lease


@dataclass(frozen=True)
class QueueDepth:
    """Approximate message counts reported by the queue."""
    visible: int
    in_flight: int


def validate_lease_duration(lease_duration):
    """Return the lease as whole seconds, raising ValueError outside (0, 12h]."""
    seconds = lease_duration.total_seconds() if isinstance(lease_duration, timedelta) else lease_duration
    seconds = int(seconds)
    if not 0 < seconds <= MAX_LEASE_DURATION:
        raise ValueError(f"Lease duration must be in (0, {MAX_LEASE_DURATION}] seconds, got {seconds}")
    return seconds


class QueueClient(ABC):
    """Interface to a named, at-least-once message queue."""

    @abstractmethod
    def receive(self, queue_id, lease_duration):
        """Receive at most one message and lease it for ``lease_duration`` seconds.

        Returns:
            ReceivedMessage or None if the queue is currently empty
        """

    @abstractmethod
    def acknowledge(self, queue_id, lease):
        """Permanently remove the leased message.

        A no-op when the lease has already expired.
        """

    @abstractmethod
    def publish(self, queue_id, payload):
        """Append a message to the queue and return its message id."""

    def queue_depth(self, queue_id):
        """Approximate visible and in-flight counts, if the backend reports them."""
        raise NotImplementedError

    def close(self):
        """Release any network resources held by the client."""


class SQSQueueClient(QueueClient):
    """Queue client backed by Amazon SQS.

    Queue ids are queue names; they are resolved to queue URLs once and cached.
    A queue that does not exist yet is created with the configured lease as
    its default visibility timeout.
    """

    def __init__(self, config, sqs_client=None):
        self.config = config
        self.receive_wait_seconds = min(config.receive_wait_seconds, MAX_RECEIVE_WAIT_SECONDS)
        self.sqs = sqs_client or boto3.client(
            'sqs',
            region_name=config.aws_region,
            endpoint_url=config.endpoint_url,
        )
        self._queue_urls = {}
        logger.info(f"SQS queue client initialized with region: {config.aws_region}")

    def get_queue_url(self, queue_id):
        """Resolve a queue name to its URL, creating the queue if needed."""
        if queue_id in self._queue_urls:
            return self._queue_urls[queue_id]

        try:
            logger.info(f"Connecting to SQS queue: {queue_id}")
            response = self.sqs.get_queue_url(QueueName=queue_id)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') not in MISSING_QUEUE_CODES:
                raise QueueTransportError('get_queue_url', queue_id, e) from e
            logger.warning(f"Queue {queue_id} does not exist, creating it")
            try:
                response = self.sqs.create_queue(
                    QueueName=queue_id,
                    Attributes={
                        'VisibilityTimeout': str(self.config.lease_duration),
                        'MessageRetentionPeriod': str(MESSAGE_RETENTION_PERIOD)
                    }
                )
            except (ClientError, BotoCoreError) as create_error:
                raise QueueTransportError('create_queue', queue_id, create_error) from create_error
        except BotoCoreError as e:
            raise QueueTransportError('get_queue_url', queue_id, e) from e

        self._queue_urls[queue_id] = response['QueueUrl']
        logger.info(f"Connected to queue: {self._queue_urls[queue_id]}")
        return self._queue_urls[queue_id]

    def receive(self, queue_id, lease_duration):
        seconds = validate_lease_duration(lease_duration)
        queue_url = self.get_queue_url(queue_id)

        # The lease starts no earlier than the request, so measuring from here
        # keeps the local expiry on the safe side of the queue's own clock.
        requested_at = _utcnow()
        try:
            response = self.sqs.receive_message(
                QueueUrl=queue_url,
                MaxNumberOfMessages=1,
                VisibilityTimeout=seconds,
                WaitTimeSeconds=self.receive_wait_seconds
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueTransportError('receive', queue_id, e) from e

        messages = response.get('Messages') or []
        if not messages:
            return None

        message = messages[0]
        lease = Lease(
            receipt_token=message['ReceiptHandle'],
            expiry=requested_at + timedelta(seconds=seconds),
            message_id=message.get('MessageId'),
        )
        if lease.is_expired():
            # A long poll outlived the lease; the message is already visible again
            logger.warning(f"Discarding message {lease.message_id} whose lease expired during receive")
            return None
        logger.debug(f"Received message {lease.message_id} leased until {lease.expiry.isoformat()}")
        return ReceivedMessage(message_id=message.get('MessageId'), body=message.get('Body', ''), lease=lease)

    def acknowledge(self, queue_id, lease):
        if lease.is_expired():
            logger.warning(
                f"Lease on message {lease.message_id} expired at {lease.expiry.isoformat()}, "
                f"skipping acknowledgment"
            )
            return

        queue_url = self.get_queue_url(queue_id)
        try:
            self.sqs.delete_message(
                QueueUrl=queue_url,
                ReceiptHandle=lease.receipt_token
            )
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in STALE_RECEIPT_CODES:
                logger.warning(f"Receipt for message {lease.message_id} is no longer valid, skipping acknowledgment")
                return
            raise QueueTransportError('acknowledge', queue_id, e) from e
        except BotoCoreError as e:
            raise QueueTransportError('acknowledge', queue_id, e) from e
        logger.debug(f"Acknowledged message {lease.message_id}")

    def publish(self, queue_id, payload):
        queue_url = self.get_queue_url(queue_id)
        try:
            response = self.sqs.send_message(
                QueueUrl=queue_url,
                MessageBody=payload
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueTransportError('publish', queue_id, e) from e
        logger.debug(f"Published message {response.get('MessageId')} to {queue_id}")
        return response.get('MessageId')

    def queue_depth(self, queue_id):
        queue_url = self.get_queue_url(queue_id)
        try:
            response = self.sqs.get_queue_attributes(
                QueueUrl=queue_url,
                AttributeNames=[
                    'ApproximateNumberOfMessages',
                    'ApproximateNumberOfMessagesNotVisible'
                ]
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueTransportError('queue_depth', queue_id, e) from e
        attributes = response.get('Attributes', {})
        return QueueDepth(
            visible=int(attributes.get('ApproximateNumberOfMessages', 0)),
            in_flight=int(attributes.get('ApproximateNumberOfMessagesNotVisible', 0)),
        )

    def close(self):
        self.sqs.close()


