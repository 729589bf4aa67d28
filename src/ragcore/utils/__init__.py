"""
Utility modules for ragcore.
"""

from .retry import RetryConfig, RetryResult, calculate_delay, retry_async

__all__ = ["RetryConfig", "RetryResult", "calculate_delay", "retry_async"]
