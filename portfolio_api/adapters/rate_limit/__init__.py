"""Rate limiting adapters.

Two fixed-window implementations share one interface: Redis counters for
multi-worker deployments and an in-memory store used when Redis is not
configured or is unreachable.
"""
