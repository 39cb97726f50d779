"""
Billing background jobs
"""

from .package_expiry_job import PackageExpiryJob

__all__ = ["PackageExpiryJob"]
