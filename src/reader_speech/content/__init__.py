"""
Book content access.

    - source.py: ContentSource interface, HTTP and directory implementations
"""
from .source import Book, ContentSource, DirectoryContentSource, HttpContentSource

__all__ = ["Book", "ContentSource", "DirectoryContentSource", "HttpContentSource"]
