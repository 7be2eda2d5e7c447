# crawly/__init__.py
"""Crawly - headless browser rendering service."""

__version__ = "1.0.0"
__title__ = "Crawly Rendering Service"
__description__ = "Render JavaScript pages and capture backend API calls for non-browser callers"
