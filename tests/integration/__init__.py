"""Integration tests for components working together as a system.

No mocks on the client side - sessions run over HttpTransport.

Coverage:
    - Request payload, headers and error mapping via httpx.MockTransport
    - Chunk boundaries and mid-stream failures
    - Full event-framed and raw-framed answers from a FastAPI backend double

No external services are required.
"""
