"""Domain Interfaces (Ports).

Abstract base classes describing the contracts infrastructure adapters
must fulfil (caching, alert delivery, user interface).
"""
