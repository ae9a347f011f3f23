"""
TripMeta — Multi-Service AI Request Orchestrator
==================================================

A single front door for typed requests to independently managed AI
backends, with a global concurrency bound, FIFO backpressure, per-service
rate limiting and per-service lifecycle.
"""

__version__ = "0.3.0"
