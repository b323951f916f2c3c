"""
Output layer for finished crawl runs.
"""

from .results_writer import ResultsWriter, ResultsWriterError

__all__ = ['ResultsWriter', 'ResultsWriterError']
