"""Document parsing."""

from inkreader.parsing.markdown_parser import MarkdownParser, ParseResult, parse_markup

__all__ = ["MarkdownParser", "ParseResult", "parse_markup"]
