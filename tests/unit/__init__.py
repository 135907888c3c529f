"""Unit tests for individual components in isolation.

Coverage:
    - relay/normalizer: message shape canonicalization
    - relay/resolver: model fallback rule
    - relay/config: environment configuration
    - relay/upstream: provider event parsing and resource release
    - relay/engine: session state machine, ordering and cancellation
    - api/streaming: client disconnect handling

Uses in-process fakes for the upstream provider.
"""
