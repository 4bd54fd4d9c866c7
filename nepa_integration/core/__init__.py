"""Core Application Layer: Orchestrates request execution and monitoring.

Connects the domain layer with the infrastructure layer through interfaces.
Contains the resilient request executor and the cross-service monitor.
"""
