"""Test package for streamchat.

Unit tests cover the streaming engine piece by piece; integration tests run
sessions over real HTTP plumbing against an in-process backend.

Structure:
    - unit/: Decoders, accumulator, pacing, sessions, config, sink
    - integration/: HttpTransport and end-to-end streaming
    - fakes.py: In-memory transports and session drivers

Timed pacing runs on a virtual clock, so no test depends on wall-clock sleeps.
Leverages pytest with pytest-check for soft assertions.
"""
