"""Integration tests for the relay working as a system.

Drives the real FastAPI app through httpx.ASGITransport with the real
UpstreamClient talking to an httpx.MockTransport provider.

Coverage:
    - Streaming success path in both wire protocols
    - Structured errors before streaming (config, validation, upstream)
    - In-band errors after streaming has begun
    - Health check
"""
