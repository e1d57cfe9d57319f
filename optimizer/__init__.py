"""Optimization engines used across scheduling modules."""

from .local_search import SearchConfig, SearchResult, local_search

__all__ = ["SearchConfig", "SearchResult", "local_search"]
