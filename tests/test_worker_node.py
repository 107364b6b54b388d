"""
Tests for the worker loop ordering and failure handling.
"""
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, call, patch

from sentiment_fleet.analyzer.analysis_pipeline import AnalysisResult
from sentiment_fleet.common.config import WorkerConfig
from sentiment_fleet.common.exceptions import (
    AnalysisError, FetchError, QueueTransportError
)
from sentiment_fleet.messaging.models import Entity, EntityLabel
from sentiment_fleet.messaging.queue_client import Lease, ReceivedMessage
from sentiment_fleet.worker.worker_node import WorkerNode, WorkerState


def make_message(body='job-42|http://example.test/page', message_id='m-1'):
    lease = Lease(
        receipt_token='receipt-1',
        expiry=datetime.now(timezone.utc) + timedelta(minutes=5),
        message_id=message_id,
    )
    return ReceivedMessage(message_id=message_id, body=body, lease=lease)


class TestWorkerNode(unittest.TestCase):
    def setUp(self):
        self.config = WorkerConfig(idle_poll_interval=0.5)
        self.queue_client = Mock()
        self.fetcher = Mock()
        self.pipeline = Mock()
        self.fetcher.fetch.return_value = 'Good news everyone.'
        self.pipeline.analyze.return_value = AnalysisResult(sentiment_score=3, entities=())
        self.worker = WorkerNode(
            self.config, self.queue_client, self.fetcher, self.pipeline, worker_id='worker-test'
        )

    def test_publish_happens_before_acknowledge(self):
        message = make_message()
        self.queue_client.receive.return_value = message

        self.assertTrue(self.worker.run_once())

        self.assertEqual(self.queue_client.mock_calls, [
            call.receive(self.config.input_queue, self.config.lease_duration),
            call.publish(self.config.output_queue, 'job-42|3|[]|Good news everyone.'),
            call.acknowledge(self.config.input_queue, message.lease),
        ])
        self.fetcher.fetch.assert_called_once_with('http://example.test/page')
        self.pipeline.analyze.assert_called_once_with('Good news everyone.')
        self.assertEqual(self.worker.stats.processed, 1)

    def test_entities_are_published(self):
        self.queue_client.receive.return_value = make_message()
        self.pipeline.analyze.return_value = AnalysisResult(
            sentiment_score=1,
            entities=(Entity('Ada', EntityLabel.PERSON),),
        )
        self.worker.run_once()
        self.queue_client.publish.assert_called_once_with(
            self.config.output_queue, 'job-42|1|[Ada:PERSON]|Good news everyone.'
        )

    def test_poison_message_is_acknowledged_without_processing(self):
        message = make_message(body='not a job')
        self.queue_client.receive.return_value = message

        self.assertTrue(self.worker.run_once())

        self.queue_client.acknowledge.assert_called_once_with(self.config.input_queue, message.lease)
        self.fetcher.fetch.assert_not_called()
        self.queue_client.publish.assert_not_called()
        self.assertEqual(self.worker.stats.poison, 1)
        self.assertEqual(self.worker.stats.processed, 0)

    def test_fetch_failure_leaves_lease(self):
        self.queue_client.receive.return_value = make_message()
        self.fetcher.fetch.side_effect = FetchError('HTTP 503', status_code=503)

        self.worker.run_once()

        self.pipeline.analyze.assert_not_called()
        self.queue_client.publish.assert_not_called()
        self.queue_client.acknowledge.assert_not_called()
        self.assertEqual(self.worker.stats.fetch_failures, 1)

    def test_analysis_failure_leaves_lease(self):
        self.queue_client.receive.return_value = make_message()
        self.pipeline.analyze.side_effect = AnalysisError('model not loaded')

        self.worker.run_once()

        self.queue_client.publish.assert_not_called()
        self.queue_client.acknowledge.assert_not_called()
        self.assertEqual(self.worker.stats.analysis_failures, 1)

    def test_publish_failure_leaves_lease(self):
        self.queue_client.receive.return_value = make_message()
        self.queue_client.publish.side_effect = QueueTransportError('publish', 'output')

        self.worker.run_once()

        self.queue_client.acknowledge.assert_not_called()
        self.assertEqual(self.worker.stats.publish_failures, 1)
        self.assertEqual(self.worker.stats.processed, 0)

    def test_acknowledge_failure_is_counted(self):
        self.queue_client.receive.return_value = make_message()
        self.queue_client.acknowledge.side_effect = QueueTransportError('acknowledge', 'input')

        self.assertTrue(self.worker.run_once())

        self.queue_client.publish.assert_called_once()
        self.assertEqual(self.worker.stats.ack_failures, 1)
        self.assertEqual(self.worker.stats.processed, 0)

    def test_receive_error_is_not_work(self):
        self.queue_client.receive.side_effect = QueueTransportError('receive', 'input')
        self.assertFalse(self.worker.run_once())
        self.assertEqual(self.worker.stats.queue_errors, 1)

    def test_empty_queue_is_not_work(self):
        self.queue_client.receive.return_value = None
        self.assertFalse(self.worker.run_once())
        self.assertEqual(self.worker.stats.empty_polls, 1)

    def test_state_returns_to_idle(self):
        self.queue_client.receive.return_value = make_message()
        self.queue_client.publish.side_effect = QueueTransportError('publish', 'output')
        self.worker.run_once()
        self.assertEqual(self.worker.state, WorkerState.IDLE)

    def test_close_releases_resources(self):
        self.worker.close()
        self.fetcher.close.assert_called_once_with()
        self.queue_client.close.assert_called_once_with()


class TestWorkerLoop(unittest.TestCase):
    def setUp(self):
        self.config = WorkerConfig(idle_poll_interval=0.5)
        self.queue_client = Mock()
        self.queue_client.receive.return_value = None
        self.worker = WorkerNode(self.config, self.queue_client, Mock(), Mock(), worker_id='worker-loop')

    def stop_after(self, count):
        sleeps = []

        def fake_sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) >= count:
                self.worker.stop()

        return sleeps, fake_sleep

    def test_idle_backoff_between_empty_receives(self):
        sleeps, fake_sleep = self.stop_after(3)
        with patch('sentiment_fleet.worker.worker_node.time.sleep', side_effect=fake_sleep):
            self.worker.start()

        self.assertEqual(self.queue_client.receive.call_count, 3)
        self.assertEqual(len(sleeps), 3)
        for seconds in sleeps:
            self.assertGreaterEqual(seconds, 0.5)
        self.assertFalse(self.worker.running)

    def test_unexpected_error_does_not_stop_the_loop(self):
        self.queue_client.receive.side_effect = [RuntimeError('boom'), None]
        sleeps, fake_sleep = self.stop_after(2)
        with patch('sentiment_fleet.worker.worker_node.time.sleep', side_effect=fake_sleep):
            self.worker.start()

        self.assertEqual(self.worker.stats.crashes, 1)
        self.assertEqual(self.worker.stats.empty_polls, 1)
        self.assertEqual(self.worker.state, WorkerState.IDLE)

    def test_no_sleep_after_a_processed_job(self):
        message = make_message()
        self.queue_client.receive.side_effect = [message, None]
        self.worker.fetcher.fetch.return_value = 'Some text.'
        self.worker.pipeline.analyze.return_value = AnalysisResult(sentiment_score=2)
        sleeps, fake_sleep = self.stop_after(1)
        with patch('sentiment_fleet.worker.worker_node.time.sleep', side_effect=fake_sleep):
            self.worker.start()

        self.assertEqual(self.queue_client.receive.call_count, 2)
        self.assertEqual(len(sleeps), 1)
        self.assertEqual(self.worker.stats.processed, 1)


if __name__ == '__main__':
    unittest.main()
