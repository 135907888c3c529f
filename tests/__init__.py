"""Test package for Chat Relay.

Structure:
    - unit/: Normalizer, resolver, config, upstream parsing, engine and
      streaming response tests
    - integration/: HTTP tests against the FastAPI app

The upstream provider is replaced by httpx.MockTransport; no network access
is needed. Leverages pytest with pytest-check for soft assertions.
"""
