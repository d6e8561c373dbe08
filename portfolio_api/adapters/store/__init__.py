"""External counter store adapters.

Holds the Redis connection lifecycle shared by every request in the process.
"""
