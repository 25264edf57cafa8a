"""
Database models for the shortlink service.

URL records and their click statistics are separate tables linked by
reference, so the redirect path and click aggregation never write the
same row.
"""

from .url import URL
from .statistics import Statistics

__all__ = ["URL", "Statistics"]
