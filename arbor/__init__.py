"""
Sitemap-driven scraping engine.

A sitemap is a tree of typed selectors plus seed URLs. The engine expands
the seeds, fetches each page with a pool of async workers, evaluates the
selectors that hang off the current scope, recurses into nested link
selectors, and merges root-level records into an export file.
"""

__version__ = "0.1.0"
