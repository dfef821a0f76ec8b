"""
Infrastructure Module

Redis-facing building blocks used by the domain caches and loaders.
"""
