"""
Integration tests.

These exercise several cache-core components together (container wiring,
loaders over the two-layer cache, invalidation across namespaces) on the
in-memory Redis client from conftest.py.
"""
