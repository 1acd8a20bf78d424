"""Utility modules."""

from .audit_logger import AuditLogger
from .rate_limiter import RateLimiter, RateLimit

__all__ = ["AuditLogger", "RateLimiter", "RateLimit"]
