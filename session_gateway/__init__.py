"""
Session Gateway
===============
Manages long-lived, independently authenticated messaging sessions behind a
request/response HTTP API, with webhook delivery of lifecycle and message
events.
"""

__version__ = "1.0.0"
