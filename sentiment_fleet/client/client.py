"""
Client interface for the sentiment analysis worker fleet.

Plays the manager's side of the manager <-> worker queues for development and
smoke tests: submit jobs, collect results and inspect queue depth.
"""
import argparse
import sys
import uuid

from sentiment_fleet.common.config import WorkerConfig
from sentiment_fleet.common.exceptions import FleetError, PoisonMessageError
from sentiment_fleet.messaging.codec import decode_result, encode_job
from sentiment_fleet.messaging.models import Job
from sentiment_fleet.messaging.queue_client import SQSQueueClient


def submit_jobs(queue_client, queue_id, urls):
    """Enqueue one job per URL and return the jobs sent."""
    jobs = []
    for url in urls:
        job = Job(job_id=f"job-{uuid.uuid4()}", source_locator=url)
        queue_client.publish(queue_id, encode_job(job))
        print(f"Submitted job {job.job_id} for URL: {url}")
        jobs.append(job)
    return jobs


def collect_results(queue_client, queue_id, lease_duration, limit=None):
    """Drain results from the output queue, printing each one.

    Results that cannot be decoded are reported and left on the queue.
    """
    results = []
    while limit is None or len(results) < limit:
        message = queue_client.receive(queue_id, lease_duration)
        if message is None:
            break
        try:
            result = decode_result(message.body)
        except PoisonMessageError as e:
            print(f"Undecodable result {message.message_id}: {e}", file=sys.stderr)
            continue
        entities = ', '.join(str(entity) for entity in result.entities)
        print(f"{result.job_id}: sentiment={result.sentiment_score} entities=[{entities}] text={result.source_text!r}")
        queue_client.acknowledge(queue_id, message.lease)
        results.append(result)
    return results


def main(argv=None):
    """Main function to run the client interface."""
    parser = argparse.ArgumentParser(description='Sentiment Fleet Client')
    parser.add_argument('--region', dest='aws_region', help='AWS region')
    parser.add_argument('--endpoint-url', help='Alternative SQS endpoint')
    subparsers = parser.add_subparsers(dest='command', required=True)

    submit = subparsers.add_parser('submit', help='Submit URLs for analysis')
    submit.add_argument('urls', nargs='+', help='URLs to analyze')

    results = subparsers.add_parser('results', help='Collect published results')
    results.add_argument('--limit', type=int, help='Stop after this many results')

    subparsers.add_parser('depth', help='Show approximate queue depths')

    args = parser.parse_args(argv)
    config = WorkerConfig.from_env(aws_region=args.aws_region, endpoint_url=args.endpoint_url)
    queue_client = SQSQueueClient(config)

    try:
        if args.command == 'submit':
            submit_jobs(queue_client, config.input_queue, args.urls)
        elif args.command == 'results':
            collect_results(queue_client, config.output_queue, config.lease_duration, args.limit)
        else:
            for queue_id in (config.input_queue, config.output_queue):
                depth = queue_client.queue_depth(queue_id)
                print(f"{queue_id}: visible={depth.visible} in_flight={depth.in_flight}")
    except FleetError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        queue_client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
