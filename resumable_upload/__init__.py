"""Resumable chunked uploads over asyncio"""

__version__ = "1.0.0"
