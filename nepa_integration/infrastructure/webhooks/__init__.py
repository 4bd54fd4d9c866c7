"""Webhook delivery: HMAC-signed event envelopes posted to subscribers.
Bounded Context: Event Delivery
"""
