"""
Word-Frequency Web Crawler

A concurrent, polite web crawler that tallies word frequencies across a site.
"""

__version__ = "1.0.0"
__description__ = "A concurrent web crawler that extracts page text and counts word frequencies"
