"""HTML content extraction."""

from inkreader.extraction.extractor import ContentExtractor, ExtractedContent

__all__ = ["ContentExtractor", "ExtractedContent"]
