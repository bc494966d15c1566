"""
Search Clients Module
"""
from .base import BaseSearchClient, RateLimitedSearchClient
from .serpapi_scraper import SerpApiSearchClient

__all__ = [
    "BaseSearchClient",
    "RateLimitedSearchClient",
    "SerpApiSearchClient",
]
