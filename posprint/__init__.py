"""
posprint

Relays web-submitted messages to a network receipt printer over a
Redis Stream channel, with per-origin rate limiting and durable storage.
"""

__version__ = "1.0.0"
__author__ = "YuDev"
__description__ = "Message relay from an HTTP endpoint to a receipt printer"
