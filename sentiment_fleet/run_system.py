"""
Main script to run a fleet of worker nodes on one machine.
"""
import argparse
import signal
import subprocess
import sys
import time


def start_worker(index, extra_args):
    """Start a worker node process."""
    print(f"Starting worker node {index}...")
    return subprocess.Popen(
        [sys.executable, '-m', 'sentiment_fleet.worker.worker_node',
         '--worker-id', f"worker-{index}"] + extra_args
    )


def main(argv=None):
    """Main function to run the fleet."""
    parser = argparse.ArgumentParser(description='Run a fleet of sentiment analysis workers')
    parser.add_argument('--workers', type=int, default=2, help='Number of worker nodes to start')
    args, extra_args = parser.parse_known_args(argv)

    processes = []
    try:
        for i in range(args.workers):
            processes.append(start_worker(i, extra_args))

        # Wait for user to press Ctrl+C
        print("\nFleet is running. Press Ctrl+C to stop.")
        while any(process.poll() is None for process in processes):
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nShutting down the fleet...")

        # Workers finish their in-flight job before exiting
        for process in processes:
            if process.poll() is None:
                process.send_signal(signal.SIGINT)

        for process in processes:
            process.wait()

        print("Fleet shutdown complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
