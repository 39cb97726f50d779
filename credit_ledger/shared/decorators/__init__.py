"""
Shared decorators
"""

from .retry import async_retry, retry_async_call

__all__ = ["async_retry", "retry_async_call"]
