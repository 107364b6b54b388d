"""
Configuration settings for the sentiment analysis worker fleet.
"""
import os
from dataclasses import dataclass, fields
from typing import Optional

# SQS queue names: x-y-queue means the x --> y direction
INPUT_QUEUE = 'manager-workers-queue'
OUTPUT_QUEUE = 'workers-manager-queue'

# AWS region
AWS_REGION = 'us-west-2'

# Lease settings
LEASE_DURATION = 300  # seconds (5 minutes), covers the slowest fetch + analysis
MAX_LEASE_DURATION = 12 * 60 * 60  # SQS visibility timeout ceiling
MESSAGE_RETENTION_PERIOD = 86400  # 1 day

# Polling settings
IDLE_POLL_INTERVAL = 0.5  # seconds to sleep after an empty receive
RECEIVE_WAIT_SECONDS = 5  # SQS long poll, 0-20
MAX_RECEIVE_WAIT_SECONDS = 20

# Fetcher settings
USER_AGENT = 'SentimentFleet/1.0'
FETCH_TIMEOUT = 30  # seconds, must stay below LEASE_DURATION

# Status logging
STATUS_LOG_INTERVAL = 60  # seconds between worker status lines

# Environment overrides, attribute -> (variable, type)
ENV_OVERRIDES = {
    'aws_region': ('FLEET_AWS_REGION', str),
    'input_queue': ('FLEET_INPUT_QUEUE', str),
    'output_queue': ('FLEET_OUTPUT_QUEUE', str),
    'lease_duration': ('FLEET_LEASE_SECONDS', int),
    'idle_poll_interval': ('FLEET_IDLE_POLL_SECONDS', float),
    'receive_wait_seconds': ('FLEET_RECEIVE_WAIT_SECONDS', int),
    'fetch_timeout': ('FLEET_FETCH_TIMEOUT', float),
    'endpoint_url': ('FLEET_SQS_ENDPOINT_URL', str),
    'log_level': ('FLEET_LOG_LEVEL', str),
}


@dataclass
class WorkerConfig:
    """Settings shared by the queue client, the fetcher and the worker loop.

    Built once at process start and handed to every component, so nothing
    reads module globals after startup.
    """
    aws_region: str = AWS_REGION
    input_queue: str = INPUT_QUEUE
    output_queue: str = OUTPUT_QUEUE
    lease_duration: int = LEASE_DURATION
    idle_poll_interval: float = IDLE_POLL_INTERVAL
    receive_wait_seconds: int = RECEIVE_WAIT_SECONDS
    fetch_timeout: float = FETCH_TIMEOUT
    user_agent: str = USER_AGENT
    status_log_interval: float = STATUS_LOG_INTERVAL
    endpoint_url: Optional[str] = None
    log_level: str = 'INFO'
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ=None, **overrides):
        """Create a config from defaults, then environment, then explicit overrides."""
        environ = os.environ if environ is None else environ
        values = {}
        for name, (variable, cast) in ENV_OVERRIDES.items():
            raw = environ.get(variable)
            if raw is None or raw == '':
                continue
            try:
                values[name] = cast(raw)
            except ValueError:
                raise ValueError(f"Invalid value for {variable}: {raw!r}")
        known = {f.name for f in fields(cls)}
        for name, value in overrides.items():
            if name not in known:
                raise TypeError(f"Unknown config option: {name}")
            if value is not None:
                values[name] = value
        config = cls(**values)
        config.validate()
        return config

    def validate(self):
        """Raise ValueError if the settings cannot work together."""
        if not self.input_queue or not self.output_queue:
            raise ValueError("Both input and output queue names are required")
        if self.input_queue == self.output_queue:
            raise ValueError("Input and output queues must be different")
        if not 0 < self.lease_duration <= MAX_LEASE_DURATION:
            raise ValueError(
                f"lease_duration must be in (0, {MAX_LEASE_DURATION}], got {self.lease_duration}"
            )
        if self.idle_poll_interval < 0:
            raise ValueError("idle_poll_interval cannot be negative")
        if not 0 <= self.receive_wait_seconds <= MAX_RECEIVE_WAIT_SECONDS:
            raise ValueError(
                f"receive_wait_seconds must be in [0, {MAX_RECEIVE_WAIT_SECONDS}]"
            )
        if self.fetch_timeout <= 0 or self.fetch_timeout >= self.lease_duration:
            # A fetch that outlives the lease races a redelivery
            raise ValueError("fetch_timeout must be positive and shorter than the lease")
        return self
