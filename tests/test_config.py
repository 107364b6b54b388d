"""
Tests for worker configuration.
"""
import unittest

from sentiment_fleet.common.config import (
    INPUT_QUEUE, LEASE_DURATION, OUTPUT_QUEUE, WorkerConfig
)


class TestWorkerConfig(unittest.TestCase):
    def test_defaults(self):
        config = WorkerConfig.from_env(environ={})
        self.assertEqual(config.input_queue, INPUT_QUEUE)
        self.assertEqual(config.output_queue, OUTPUT_QUEUE)
        self.assertEqual(config.lease_duration, LEASE_DURATION)
        self.assertEqual(config.idle_poll_interval, 0.5)
        self.assertIsNone(config.endpoint_url)

    def test_environment_overrides(self):
        config = WorkerConfig.from_env(environ={
            'FLEET_INPUT_QUEUE': 'jobs',
            'FLEET_OUTPUT_QUEUE': 'results',
            'FLEET_LEASE_SECONDS': '120',
            'FLEET_IDLE_POLL_SECONDS': '2.5',
            'FLEET_SQS_ENDPOINT_URL': 'http://localhost:4566',
            'FLEET_LOG_LEVEL': 'DEBUG',
        })
        self.assertEqual(config.input_queue, 'jobs')
        self.assertEqual(config.output_queue, 'results')
        self.assertEqual(config.lease_duration, 120)
        self.assertEqual(config.idle_poll_interval, 2.5)
        self.assertEqual(config.endpoint_url, 'http://localhost:4566')
        self.assertEqual(config.log_level, 'DEBUG')

    def test_explicit_overrides_win(self):
        config = WorkerConfig.from_env(
            environ={'FLEET_LEASE_SECONDS': '120'},
            lease_duration=600,
            aws_region=None,
        )
        self.assertEqual(config.lease_duration, 600)
        self.assertEqual(config.aws_region, 'us-west-2')

    def test_invalid_environment_value(self):
        with self.assertRaises(ValueError):
            WorkerConfig.from_env(environ={'FLEET_LEASE_SECONDS': 'five minutes'})

    def test_unknown_override(self):
        with self.assertRaises(TypeError):
            WorkerConfig.from_env(environ={}, lease_seconds=10)

    def test_validation(self):
        invalid = [
            {'input_queue': ''},
            {'input_queue': 'same', 'output_queue': 'same'},
            {'lease_duration': 0},
            {'lease_duration': 12 * 60 * 60 + 1},
            {'idle_poll_interval': -1},
            {'receive_wait_seconds': 21},
            {'fetch_timeout': 0},
            {'lease_duration': 30, 'fetch_timeout': 30},
        ]
        for overrides in invalid:
            with self.subTest(overrides=overrides):
                with self.assertRaises(ValueError):
                    WorkerConfig(**overrides).validate()


if __name__ == '__main__':
    unittest.main()
