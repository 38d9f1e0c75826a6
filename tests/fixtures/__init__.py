"""
Pytest fixtures for the pigeon test suite.

Fixtures are organized by subsystem:
- http_mocking: HTTPX MockTransport router and response builder
- clock: Fake monotonic clock and recording sleep
"""
