"""nepa-integration: resilient access to external JSON/HTTP services.

Wraps banking, credit scoring and utility billing APIs behind a single
resilient calling convention (caching, rate limiting, retries, webhooks,
metrics) and layers cross-service monitoring on top.
"""

__version__ = "1.0.0"
