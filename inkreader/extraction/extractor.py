"""HTML capture normalization.

Turns a captured page into Markdown text the document parser understands.
BeautifulSoup's ``html.parser`` tree builder repairs unbalanced markup, and
markdownify serializes the cleaned tree.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment, UnicodeDammit
from bs4.element import Tag
from markdownify import markdownify as md_convert

from inkreader.exceptions import ExtractionError

logger = logging.getLogger(__name__)

# Elements that never carry readable content
NON_CONTENT_TAGS = (
    "script",
    "style",
    "noscript",
    "template",
    "head",
    "iframe",
    "object",
    "embed",
    "svg",
    "canvas",
    "video",
    "audio",
    "source",
    "track",
    "form",
    "input",
    "button",
    "select",
    "textarea",
    "nav",
    "aside",
    "footer",
)

CONTENT_ROOTS = ("article", "main", "body")

_BLANK_LINES = re.compile(r"\n{3,}")
_TRAILING_SPACE = re.compile(r"[ \t]+$", re.MULTILINE)


@dataclass(frozen=True)
class ExtractedContent:
    """Normalized page content."""

    markup: str
    title: str | None
    image_urls: tuple[str, ...]


class ContentExtractor:
    """Converts raw captured HTML into normalized Markdown."""

    def decode(self, raw: bytes, charset: str | None = None) -> str:
        """Decode a captured byte stream.

        Args:
            raw: Request body
            charset: Charset declared by the sender, if any

        Returns:
            Decoded text

        Raises:
            ExtractionError: If the bytes cannot be decoded to text
        """
        if charset:
            try:
                text = raw.decode(charset)
            except LookupError as e:
                raise ExtractionError(f"Unknown charset: {charset}") from e
            except UnicodeDecodeError as e:
                raise ExtractionError(f"Body is not valid {charset}: {e.reason}") from e
        else:
            dammit = UnicodeDammit(raw, is_html=True)
            if dammit.unicode_markup is None:
                raise ExtractionError("Could not detect the body encoding")
            text = dammit.unicode_markup
            logger.debug("Detected body encoding %s", dammit.original_encoding)

        if "\x00" in text:
            raise ExtractionError("Body contains NUL characters, not a text document")
        return text

    def extract(self, text: str, source_url: str) -> ExtractedContent:
        """Normalize page HTML into Markdown.

        Args:
            text: Decoded page HTML
            source_url: URL the page was captured from, used to absolutize links

        Returns:
            ExtractedContent with Markdown, the page title and image URLs
        """
        soup = BeautifulSoup(text, "html.parser")

        title = None
        if soup.title is not None and soup.title.string:
            title = soup.title.string.strip() or None

        base_url = source_url
        base = soup.find("base", href=True)
        if isinstance(base, Tag):
            base_url = urljoin(source_url, str(base["href"]))

        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()
        for tag in soup.find_all(NON_CONTENT_TAGS):
            tag.decompose()

        root = self._content_root(soup)
        image_urls = self._absolutize(root, base_url)

        markdown = md_convert(str(root), heading_style="ATX", bullets="-")
        markdown = _TRAILING_SPACE.sub("", markdown)
        markdown = _BLANK_LINES.sub("\n\n", markdown).strip()

        logger.info(
            "Extracted %d characters of markup and %d images from %s",
            len(markdown),
            len(image_urls),
            source_url,
        )
        return ExtractedContent(markup=markdown, title=title, image_urls=image_urls)

    def _content_root(self, soup: BeautifulSoup) -> Tag | BeautifulSoup:
        for name in CONTENT_ROOTS:
            found = soup.find(name)
            if isinstance(found, Tag):
                return found
        return soup

    def _absolutize(self, root: Tag | BeautifulSoup, base_url: str) -> tuple[str, ...]:
        for anchor in root.find_all("a"):
            href = anchor.get("href")
            if not href:
                continue
            href = str(href).strip()
            if href.lower().startswith("javascript:"):
                anchor.unwrap()
            else:
                anchor["href"] = urljoin(base_url, href)

        image_urls: list[str] = []
        for img in root.find_all("img"):
            src = img.get("src") or img.get("data-src")
            if not src or str(src).startswith("data:"):
                continue
            absolute = urljoin(base_url, str(src).strip())
            img["src"] = absolute
            if absolute not in image_urls:
                image_urls.append(absolute)
        return tuple(image_urls)
