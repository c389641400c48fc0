"""Unit tests for individual components in isolation.

Ensures fast execution with minimal dependencies.

Coverage:
    - Frame decoders and the accumulator
    - Pacing policies and schedulers
    - Session lifecycle, cancellation and error paths
    - Settings validation and the chat transcript

Uses in-memory transports from tests/fakes.py. Leverages pytest-check for
multiple assertions per test.
"""
