"""Structured document tree produced by the markup parser.

All nodes are frozen dataclasses holding tuples, so a parsed tree can be
shared between threads and compared structurally.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class SpanStyle(Enum):
    """Inline text style. Nested styles resolve to the innermost one."""

    PLAIN = "plain"
    BOLD = "bold"
    ITALIC = "italic"
    CODE = "code"


@dataclass(frozen=True)
class TextSpan:
    """A piece of text with a single style."""

    text: str
    style: SpanStyle = SpanStyle.PLAIN


@dataclass(frozen=True)
class Link:
    """Hyperlink with its own inline runs."""

    href: str
    runs: tuple[TextSpan, ...] = ()

    @property
    def text(self) -> str:
        return "".join(span.text for span in self.runs)


Inline = Union[TextSpan, Link]
Run = tuple[Inline, ...]


@dataclass(frozen=True)
class Heading:
    level: int
    runs: Run = ()


@dataclass(frozen=True)
class Paragraph:
    runs: Run = ()


@dataclass(frozen=True)
class BlockQuote:
    runs: Run = ()


@dataclass(frozen=True)
class ListItem:
    """One list entry. A single item may hold several blocks, including nested lists."""

    children: tuple["DocumentNode", ...] = ()


@dataclass(frozen=True)
class ListBlock:
    """Ordered or unordered list with one ``ListItem`` per entry."""

    ordered: bool
    items: tuple[ListItem, ...] = ()
    start: int = 1


@dataclass(frozen=True)
class CodeBlock:
    language: str | None
    text: str


@dataclass(frozen=True)
class Image:
    src: str
    alt: str = ""


@dataclass(frozen=True)
class Table:
    """Rows of cells, each cell an inline run. The first row is the header."""

    rows: tuple[tuple[Run, ...], ...] = ()


@dataclass(frozen=True)
class ThematicBreak:
    pass


@dataclass(frozen=True)
class Document:
    children: tuple["DocumentNode", ...] = field(default_factory=tuple)


DocumentNode = Union[
    Document,
    Heading,
    Paragraph,
    BlockQuote,
    ListBlock,
    ListItem,
    CodeBlock,
    Image,
    Link,
    Table,
    ThematicBreak,
]


def run_text(run: Run) -> str:
    """Return the plain text of an inline run.

    Args:
        run: Inline run

    Returns:
        Concatenated text of all spans and link texts
    """
    return "".join(inline.text for inline in run)
