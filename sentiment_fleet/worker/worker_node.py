"""
Worker Node for the sentiment analysis fleet.
Leases jobs from the input queue, fetches and analyzes their content and
publishes the results to the output queue.

A job is acknowledged only after its result has been published. Any failure
before that point leaves the lease to expire, so the queue hands the job out
again exactly as if this process had crashed.
"""
import argparse
import logging
import signal
import sys
import time
import traceback
import uuid
from dataclasses import asdict, dataclass
from enum import Enum

import psutil

from sentiment_fleet.analyzer.analysis_pipeline import AnalysisPipeline
from sentiment_fleet.common.config import WorkerConfig
from sentiment_fleet.common.exceptions import (
    AnalysisError, FetchError, PoisonMessageError, QueueTransportError
)
from sentiment_fleet.common.utils import configure_logging
from sentiment_fleet.fetcher.content_fetcher import ContentFetcher
from sentiment_fleet.messaging.codec import decode_job, encode_result
from sentiment_fleet.messaging.models import Result
from sentiment_fleet.messaging.queue_client import SQSQueueClient

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = 'idle'
    LEASED = 'leased'
    FETCHING = 'fetching'
    ANALYZING = 'analyzing'
    PUBLISHING = 'publishing'
    ACKNOWLEDGING = 'acknowledging'


@dataclass
class WorkerStats:
    """Counters for a single worker."""
    received: int = 0
    processed: int = 0
    poison: int = 0
    fetch_failures: int = 0
    analysis_failures: int = 0
    publish_failures: int = 0
    ack_failures: int = 0
    crashes: int = 0
    empty_polls: int = 0
    queue_errors: int = 0


class WorkerNode:
    """
    Worker that consumes one job at a time from the input queue.
    """
    def __init__(self, config, queue_client, fetcher, pipeline, worker_id=None):
        self.worker_id = worker_id or f"worker-{uuid.uuid4()}"
        self.config = config
        self.queue_client = queue_client
        self.fetcher = fetcher
        self.pipeline = pipeline
        self.stats = WorkerStats()
        self.state = WorkerState.IDLE
        self.running = False
        self.last_status_log = time.monotonic()

    def _set_state(self, state):
        self.state = state
        logger.debug(f"{self.worker_id} -> {state.value}")

    def start(self):
        """Run the worker loop until stop() is called."""
        logger.info(
            f"Starting worker node {self.worker_id} on {self.config.input_queue} "
            f"-> {self.config.output_queue}"
        )
        self.running = True

        logger.info("Entering main worker loop")
        while self.running:
            try:
                did_work = self.run_once()
            except Exception as e:
                # Treated like a crash: the lease is left to expire
                self.stats.crashes += 1
                self._set_state(WorkerState.IDLE)
                logger.error(f"Error in worker main loop: {e}")
                logger.error(traceback.format_exc())
                did_work = False

            if not did_work and self.running:
                # Fixed idle interval; an empty queue is the common case
                time.sleep(self.config.idle_poll_interval)
            self._maybe_log_status()

        logger.info(f"Worker node {self.worker_id} left the main loop")
        self._log_status()

    def stop(self):
        """Ask the loop to exit once the in-flight job, if any, is done."""
        logger.info(f"Stopping worker node: {self.worker_id}")
        self.running = False

    def close(self):
        """Release the fetcher session and queue connections."""
        self.fetcher.close()
        self.queue_client.close()

    def run_once(self):
        """Run a single receive-process-publish-acknowledge iteration.

        Returns:
            bool: True if a message was received, False if the queue was empty
                or could not be reached
        """
        self._set_state(WorkerState.IDLE)
        try:
            message = self.queue_client.receive(self.config.input_queue, self.config.lease_duration)
        except QueueTransportError as e:
            self.stats.queue_errors += 1
            logger.error(f"Error receiving from {self.config.input_queue}: {e}")
            return False

        if message is None:
            self.stats.empty_polls += 1
            logger.debug("No jobs available, waiting...")
            return False

        self.stats.received += 1
        self._set_state(WorkerState.LEASED)
        try:
            self._process_message(message)
        finally:
            self._set_state(WorkerState.IDLE)
        return True

    def _process_message(self, message):
        try:
            job = decode_job(message.body)
        except PoisonMessageError as e:
            self.stats.poison += 1
            logger.error(f"Dropping undecodable message {message.message_id}: {e}")
            # Redelivery cannot make it parseable
            self._acknowledge(message)
            return

        logger.info(f"Processing job {job.job_id} for URL: {job.source_locator}")

        self._set_state(WorkerState.FETCHING)
        try:
            text = self.fetcher.fetch(job.source_locator)
        except FetchError as e:
            self.stats.fetch_failures += 1
            logger.warning(f"Fetch failed for job {job.job_id}, leaving lease to expire: {e}")
            return

        self._set_state(WorkerState.ANALYZING)
        try:
            analysis = self.pipeline.analyze(text)
        except AnalysisError as e:
            self.stats.analysis_failures += 1
            logger.warning(f"Analysis failed for job {job.job_id}, leaving lease to expire: {e}")
            return

        result = Result(
            job_id=job.job_id,
            sentiment_score=analysis.sentiment_score,
            entities=analysis.entities,
            source_text=text,
        )
        logger.info(f"Job {job.job_id}: sentiment {result.sentiment_score}, {len(result.entities)} entities")

        self._set_state(WorkerState.PUBLISHING)
        try:
            self.queue_client.publish(self.config.output_queue, encode_result(result))
        except QueueTransportError as e:
            self.stats.publish_failures += 1
            logger.warning(f"Publish failed for job {job.job_id}, leaving lease to expire: {e}")
            return

        if self._acknowledge(message):
            self.stats.processed += 1
            logger.info(f"Successfully processed job {job.job_id}")

    def _acknowledge(self, message):
        self._set_state(WorkerState.ACKNOWLEDGING)
        try:
            self.queue_client.acknowledge(self.config.input_queue, message.lease)
            return True
        except QueueTransportError as e:
            # The job comes back and is processed again; downstream tolerates duplicates
            self.stats.ack_failures += 1
            logger.error(f"Error acknowledging message {message.message_id}: {e}")
            return False

    def _maybe_log_status(self):
        if time.monotonic() - self.last_status_log >= self.config.status_log_interval:
            self._log_status()

    def _log_status(self):
        self.last_status_log = time.monotonic()
        counters = ', '.join(f"{name}={value}" for name, value in asdict(self.stats).items())
        logger.info(f"Status {self.worker_id}: {counters}, memory={self._get_memory_usage():.1f}MB")

    def _get_memory_usage(self):
        """Get current memory usage of the process in MB."""
        try:
            return psutil.Process().memory_info().rss / 1024 / 1024
        except psutil.Error:
            return 0.0


def build_worker(config, worker_id=None):
    """Wire up a worker from its configuration."""
    queue_client = SQSQueueClient(config)
    fetcher = ContentFetcher.from_config(config)
    pipeline = AnalysisPipeline()
    return WorkerNode(config, queue_client, fetcher, pipeline, worker_id=worker_id)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Run a sentiment analysis worker node')
    parser.add_argument('--worker-id', help='Identifier used in logs (random by default)')
    parser.add_argument('--input-queue', help='Queue to lease jobs from')
    parser.add_argument('--output-queue', help='Queue to publish results to')
    parser.add_argument('--region', dest='aws_region', help='AWS region')
    parser.add_argument('--endpoint-url', help='Alternative SQS endpoint, e.g. a local emulator')
    parser.add_argument('--lease', dest='lease_duration', type=int, help='Lease duration in seconds')
    parser.add_argument('--idle-interval', dest='idle_poll_interval', type=float,
                        help='Seconds to sleep after an empty receive')
    parser.add_argument('--log-level', help='Log level (INFO or DEBUG)')
    parser.add_argument('--log-file', help='Also write logs to this file')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    overrides = {key: value for key, value in vars(args).items() if key != 'worker_id'}
    try:
        config = WorkerConfig.from_env(**overrides)
    except (TypeError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    configure_logging('Worker', config.log_level, config.log_file)
    logger.info("Initializing worker node")
    worker = build_worker(config, worker_id=args.worker_id)

    def _handle_signal(signum, _frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        worker.stop()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    try:
        worker.pipeline.warm_up()
    except AnalysisError as e:
        logger.warning(f"Could not warm up the analysis pipeline, continuing: {e}")

    try:
        worker.start()
    except Exception as e:
        logger.error(f"Fatal error in worker node: {e}")
        logger.error(traceback.format_exc())
        return 1
    finally:
        worker.close()
    logger.info("Worker node stopped successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
