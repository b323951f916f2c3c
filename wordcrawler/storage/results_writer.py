"""
File output for finished crawl runs: a JSON data dump and a word-frequency CSV.
"""

import csv
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from ..crawler.records import CrawlResult


class ResultsWriterError(Exception):
    """Raised when results cannot be written."""
    pass


class ResultsWriter:
    """Writes a CrawlResult to ``crawl-data-<ts>.json`` and ``word-frequency-<ts>.csv``."""

    def __init__(self, data_directory: str, top_words: int = 200):
        self.data_directory = Path(data_directory)
        self.top_words = top_words
        self.logger = logging.getLogger(__name__)

    def write(self, result: CrawlResult, timestamp: Optional[str] = None) -> Dict[str, Path]:
        """
        Write both files and return their paths keyed by ``json`` and ``csv``.
        """
        timestamp = timestamp or datetime.now(timezone.utc).strftime('%Y-%m-%dT%H-%M-%S')

        try:
            self.data_directory.mkdir(parents=True, exist_ok=True)

            json_file = self.data_directory / f"crawl-data-{timestamp}.json"
            with open(json_file, 'w', encoding='utf-8') as f:
                json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)

            csv_file = self.data_directory / f"word-frequency-{timestamp}.csv"
            with open(csv_file, 'w', encoding='utf-8', newline='') as f:
                writer = csv.writer(f)
                writer.writerow(['word', 'count', 'percentage'])
                for word, count, percentage in result.top_words(self.top_words):
                    writer.writerow([word, count, f"{percentage:.2f}"])

        except OSError as e:
            raise ResultsWriterError(f"Could not write results to {self.data_directory}: {e}") from e

        self.logger.info(f"Crawl data saved: {json_file}")
        self.logger.info(f"Word frequency saved: {csv_file}")

        return {'json': json_file, 'csv': csv_file}
