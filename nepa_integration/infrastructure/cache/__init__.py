"""Caching Service Implementation.

Provides the in-memory keyed cache used by the request executor,
with TTL expiry and LRU/FIFO/LFU eviction.
Bounded Context: Cache Management
"""
