"""Storage layer.

This module persists dataset metadata and payloads for a repository.
It powers session locking, querying, cleanup, and atomic commits.
"""
