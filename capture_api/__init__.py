"""Headless Chromium capture service: images, PDFs, HTML snapshots and page timings."""

__version__ = "1.0.0"
