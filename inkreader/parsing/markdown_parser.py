"""Tolerant Markdown parser producing the document tree.

The parser works line by line and never raises for malformed input. Local
defects are recorded as ``ParseWarning`` values and the affected text falls
back to plain paragraph content.
"""

from __future__ import annotations

import bisect
import logging
import re
import string
from dataclasses import dataclass
from typing import NamedTuple, Union

from inkreader.exceptions import ParseWarning
from inkreader.models.document import (
    BlockQuote,
    CodeBlock,
    Document,
    DocumentNode,
    Heading,
    Image,
    Inline,
    Link,
    ListBlock,
    ListItem,
    Paragraph,
    Run,
    SpanStyle,
    Table,
    TextSpan,
    ThematicBreak,
)

logger = logging.getLogger(__name__)

_ATX = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*))?$")
_ATX_CLOSE = re.compile(r"(?:^|[ \t]+)#+[ \t]*$")
_FENCE = re.compile(r"^( {0,3})(`{3,}|~{3,})[ \t]*([^`]*)$")
_RULE = re.compile(r"^ {0,3}([-*_])(?:[ \t]*\1){2,}[ \t]*$")
_QUOTE = re.compile(r"^ {0,3}>[ ]?(.*)$")
_LIST_ITEM = re.compile(r"^( *)([-*+]|\d{1,9}[.)])(?:([ \t]+)(.*))?$")
_TABLE_SEP = re.compile(r"^ {0,3}\|?[ \t]*:?-+:?[ \t]*(?:\|[ \t]*:?-+:?[ \t]*)*\|?[ \t]*$")
_AUTOLINK = re.compile(r"<((?:https?|ftp|mailto):[^\s<>]+)>", re.IGNORECASE)
_UNESCAPE = re.compile(r"\\([%s])" % re.escape(string.punctuation))

_ESCAPABLE = frozenset(string.punctuation)

# Deeper lists are flattened into plain item text
MAX_LIST_DEPTH = 64


class _Line(NamedTuple):
    number: int
    column: int
    text: str


@dataclass(frozen=True)
class ParseResult:
    document: Document
    warnings: tuple[ParseWarning, ...] = ()


# Inline segments used while resolving emphasis


class _Text:
    def __init__(self, text: str) -> None:
        self.text = text


class _Code:
    def __init__(self, text: str) -> None:
        self.text = text


class _Delim:
    def __init__(self, char: str, length: int, offset: int, can_open: bool, can_close: bool) -> None:
        self.char = char
        self.length = length
        self.offset = offset
        self.can_open = can_open
        self.can_close = can_close

    @property
    def marker(self) -> str:
        return self.char * self.length


class _Styled:
    def __init__(self, style: SpanStyle, children: list) -> None:
        self.style = style
        self.children = children


class _LinkSegment:
    def __init__(self, href: str, children: list) -> None:
        self.href = href
        self.children = children


class _ImageSegment:
    def __init__(self, src: str, alt: str) -> None:
        self.src = src
        self.alt = alt


_Segment = Union[_Text, _Code, _Delim, _Styled, _LinkSegment, _ImageSegment]


class _SourceMap:
    """Maps offsets in joined paragraph text back to source line and column."""

    def __init__(self) -> None:
        self._starts: list[int] = []
        self._positions: list[tuple[int, int]] = []

    def add(self, offset: int, line: int, column: int) -> None:
        self._starts.append(offset)
        self._positions.append((line, column))

    def locate(self, offset: int) -> tuple[int, int]:
        index = max(bisect.bisect_right(self._starts, offset) - 1, 0)
        line, column = self._positions[index]
        return line, column + offset - self._starts[index] + 1


def _unescape(text: str) -> str:
    return _UNESCAPE.sub(r"\1", text)


def _starts_block(text: str) -> bool:
    """Whether a line interrupts a running paragraph."""
    if _ATX.match(text) or _FENCE.match(text) or _RULE.match(text) or _QUOTE.match(text):
        return True
    item = _LIST_ITEM.match(text)
    if item is None or not (item.group(4) or "").strip():
        return False
    marker = item.group(2)
    return not marker[0].isdigit() or marker[:-1] == "1"


class _BlockParser:
    """Working state of a single parse."""

    def parse(self, markup: str) -> ParseResult:
        self._warnings: list[ParseWarning] = []
        self._list_depth = 0
        text = markup.replace("\r\n", "\n").replace("\r", "\n").expandtabs(4)
        lines = [_Line(number, 0, line) for number, line in enumerate(text.split("\n"), start=1)]
        children = self._parse_blocks(lines)

        warnings = tuple(self._warnings)
        for warning in warnings:
            logger.warning("Recovered from malformed markup at %s", warning)
        logger.debug("Parsed %d top-level blocks with %d warnings", len(children), len(warnings))
        return ParseResult(document=Document(children=tuple(children)), warnings=warnings)

    # Block level

    def _parse_blocks(self, lines: list[_Line]) -> list[DocumentNode]:
        blocks: list[DocumentNode] = []
        i = 0
        while i < len(lines):
            line = lines[i]
            if not line.text.strip():
                i += 1
                continue

            fence = _FENCE.match(line.text)
            if fence:
                end = self._find_fence_end(lines, i, fence.group(2))
                if end is not None:
                    language = fence.group(3).strip().split(" ")[0] or None
                    indent = len(fence.group(1))
                    body = [self._strip_indent(code.text, indent) for code in lines[i + 1 : end]]
                    blocks.append(CodeBlock(language=language, text="\n".join(body)))
                    i = end + 1
                    continue
                self._warn(line.number, line.column + len(fence.group(1)) + 1, "unterminated code fence")
                i = self._parse_paragraph(lines, i, blocks)
                continue

            heading = _ATX.match(line.text)
            if heading:
                content = _ATX_CLOSE.sub("", heading.group(2) or "").strip()
                column = line.column + line.text.find(content) if content else line.column
                pieces = self._parse_inline(content, self._single_line_map(line.number, column))
                runs, images = self._split_images(pieces)
                blocks.append(Heading(level=len(heading.group(1)), runs=runs))
                blocks.extend(images)
                i += 1
                continue

            if _RULE.match(line.text):
                blocks.append(ThematicBreak())
                i += 1
                continue

            if _QUOTE.match(line.text):
                i = self._parse_quote(lines, i, blocks)
                continue

            if _LIST_ITEM.match(line.text):
                i = self._parse_list(lines, i, blocks)
                continue

            if "|" in line.text and i + 1 < len(lines) and self._is_table_separator(lines[i + 1].text):
                i = self._parse_table(lines, i, blocks)
                continue

            i = self._parse_paragraph(lines, i, blocks)
        return blocks

    def _find_fence_end(self, lines: list[_Line], start: int, opener: str) -> int | None:
        for j in range(start + 1, len(lines)):
            stripped = lines[j].text.strip()
            if stripped and set(stripped) == {opener[0]} and len(stripped) >= len(opener):
                return j
        return None

    @staticmethod
    def _strip_indent(text: str, indent: int) -> str:
        removable = len(text) - len(text.lstrip(" "))
        return text[min(indent, removable) :]

    @staticmethod
    def _is_table_separator(text: str) -> bool:
        return "|" in text and "-" in text and bool(_TABLE_SEP.match(text))

    def _parse_paragraph(self, lines: list[_Line], start: int, blocks: list[DocumentNode]) -> int:
        collected = [lines[start]]
        i = start + 1
        while i < len(lines):
            text = lines[i].text
            if not text.strip() or _starts_block(text):
                break
            collected.append(lines[i])
            i += 1
        self._emit_inline_block(collected, blocks, Paragraph)
        return i

    def _parse_quote(self, lines: list[_Line], start: int, blocks: list[DocumentNode]) -> int:
        collected: list[_Line] = []
        i = start
        while i < len(lines):
            match = _QUOTE.match(lines[i].text)
            if match is None:
                break
            inner = match.group(1)
            column = lines[i].column + match.start(1)
            # nested quote markers flatten into the same quote
            nested = _QUOTE.match(inner)
            while nested:
                column += nested.start(1)
                inner = nested.group(1)
                nested = _QUOTE.match(inner)
            if inner.strip():
                collected.append(_Line(lines[i].number, column, inner))
            i += 1
        if collected:
            self._emit_inline_block(collected, blocks, BlockQuote)
        return i

    def _emit_inline_block(self, collected: list[_Line], blocks: list[DocumentNode], node_type: type) -> None:
        source_map = _SourceMap()
        parts = []
        offset = 0
        for line in collected:
            stripped = line.text.strip()
            leading = len(line.text) - len(line.text.lstrip())
            source_map.add(offset, line.number, line.column + leading)
            parts.append(stripped)
            offset += len(stripped) + 1
        pieces = self._parse_inline(" ".join(parts), source_map)

        # images split the block so that they keep their source position
        current: list[Inline] = []
        for piece in pieces:
            if isinstance(piece, Image):
                self._append_runs(current, blocks, node_type)
                current = []
                blocks.append(piece)
            else:
                current.append(piece)
        self._append_runs(current, blocks, node_type)

    def _append_runs(self, pieces: list[Inline], blocks: list[DocumentNode], node_type: type) -> None:
        runs = self._trim(pieces)
        if runs:
            blocks.append(node_type(runs=runs))

    def _parse_list(self, lines: list[_Line], start: int, blocks: list[DocumentNode]) -> int:
        first = _LIST_ITEM.match(lines[start].text)
        assert first is not None
        ordered = first.group(2)[-1] in ".)"
        kind = first.group(2)[-1] if ordered else first.group(2)
        list_start = int(first.group(2)[:-1]) if ordered else 1

        items: list[ListItem] = []
        i = start
        while i < len(lines):
            match = _LIST_ITEM.match(lines[i].text)
            if match is None:
                break
            marker = match.group(2)
            if (marker[-1] in ".)") != ordered or (marker[-1] if ordered else marker) != kind:
                break

            if match.group(4) is None:
                content_indent = match.end(2) + 1
                item_lines = [_Line(lines[i].number, lines[i].column + content_indent, "")]
            else:
                content_indent = match.start(4)
                item_lines = [_Line(lines[i].number, lines[i].column + content_indent, match.group(4))]
            i += 1

            while i < len(lines):
                line = lines[i]
                indent = len(line.text) - len(line.text.lstrip(" "))
                if not line.text.strip():
                    following = self._next_non_blank(lines, i)
                    if following is None:
                        break
                    next_text = lines[following].text
                    if len(next_text) - len(next_text.lstrip(" ")) < content_indent:
                        break
                    item_lines.append(_Line(line.number, line.column, ""))
                    i += 1
                elif indent >= content_indent:
                    item_lines.append(_Line(line.number, line.column + content_indent, line.text[content_indent:]))
                    i += 1
                elif item_lines[-1].text.strip() and not _starts_block(line.text) and not _LIST_ITEM.match(line.text):
                    # lazy continuation of the item's paragraph
                    item_lines.append(_Line(line.number, line.column + indent, line.text[indent:]))
                    i += 1
                else:
                    break

            items.append(ListItem(children=tuple(self._parse_item(item_lines))))

            following = self._next_non_blank(lines, i)
            if following is None or _LIST_ITEM.match(lines[following].text) is None:
                break
            i = following

        blocks.append(ListBlock(ordered=ordered, items=tuple(items), start=list_start))
        return i

    def _parse_item(self, item_lines: list[_Line]) -> list[DocumentNode]:
        if self._list_depth >= MAX_LIST_DEPTH:
            content = [line for line in item_lines if line.text.strip()]
            if not content:
                return []
            self._warn(
                content[0].number, content[0].column + 1, f"list nested deeper than {MAX_LIST_DEPTH} levels"
            )
            flattened: list[DocumentNode] = []
            self._emit_inline_block(content, flattened, Paragraph)
            return flattened

        self._list_depth += 1
        try:
            return self._parse_blocks(item_lines)
        finally:
            self._list_depth -= 1

    @staticmethod
    def _next_non_blank(lines: list[_Line], start: int) -> int | None:
        for j in range(start, len(lines)):
            if lines[j].text.strip():
                return j
        return None

    def _parse_table(self, lines: list[_Line], start: int, blocks: list[DocumentNode]) -> int:
        header = self._split_row(lines[start])
        rows: list[tuple[Run, ...]] = []
        images: list[Image] = []
        width = len(header)

        i = start + 2
        raw_rows = [header]
        while i < len(lines) and lines[i].text.strip() and "|" in lines[i].text:
            raw_rows.append(self._split_row(lines[i]))
            i += 1

        for raw in raw_rows:
            cells: list[Run] = []
            for line in raw[:width]:
                runs, cell_images = self._split_images(
                    self._parse_inline(line.text, self._single_line_map(line.number, line.column))
                )
                cells.append(runs)
                images.extend(cell_images)
            cells.extend(() for _ in range(width - len(cells)))
            rows.append(tuple(cells))

        blocks.append(Table(rows=tuple(rows)))
        blocks.extend(images)
        return i

    @staticmethod
    def _split_row(line: _Line) -> list[_Line]:
        text = line.text
        cells: list[_Line] = []
        start = 0
        stripped = text.strip()
        offset = text.find(stripped) if stripped else 0
        if stripped.startswith("|"):
            offset += 1
            stripped = stripped[1:]
        if stripped.endswith("|") and not stripped.endswith("\\|"):
            stripped = stripped[:-1]

        i = 0
        while i <= len(stripped):
            if i == len(stripped) or (stripped[i] == "|" and (i == 0 or stripped[i - 1] != "\\")):
                raw = stripped[start:i]
                leading = len(raw) - len(raw.lstrip())
                cells.append(_Line(line.number, line.column + offset + start + leading, raw.strip()))
                start = i + 1
            i += 1
        return cells

    # Inline level

    def _single_line_map(self, number: int, column: int) -> _SourceMap:
        source_map = _SourceMap()
        source_map.add(0, number, column)
        return source_map

    def _parse_inline(self, text: str, source_map: _SourceMap) -> list[Inline | Image]:
        self._source_map = source_map
        segments = self._resolve_emphasis(self._tokenize(text, 0))
        return self._merge(self._flatten(segments, SpanStyle.PLAIN))

    def _tokenize(self, text: str, base: int) -> list[_Segment]:
        segments: list[_Segment] = []
        buffer: list[str] = []

        def flush() -> None:
            if buffer:
                segments.append(_Text("".join(buffer)))
                buffer.clear()

        i = 0
        n = len(text)
        while i < n:
            char = text[i]
            if char == "\\" and i + 1 < n and text[i + 1] in _ESCAPABLE:
                buffer.append(text[i + 1])
                i += 2
                continue

            if char == "`":
                run = len(text[i:]) - len(text[i:].lstrip("`"))
                closing = re.compile(r"(?<!`)`{%d}(?!`)" % run).search(text, i + run)
                if closing is None:
                    buffer.append("`" * run)
                    i += run
                    continue
                code = text[i + run : closing.start()]
                if len(code) > 2 and code.startswith(" ") and code.endswith(" ") and code.strip():
                    code = code[1:-1]
                flush()
                segments.append(_Code(code))
                i = closing.end()
                continue

            if char == "!" and text.startswith("[", i + 1):
                link = self._match_link(text, i + 1)
                if link is not None:
                    label, destination, end = link
                    flush()
                    segments.append(_ImageSegment(destination, _unescape(label)))
                    i = end
                    continue

            if char == "[":
                link = self._match_link(text, i)
                if link is not None:
                    label, destination, end = link
                    flush()
                    children = self._resolve_emphasis(self._tokenize(label, base + i + 1))
                    segments.append(_LinkSegment(destination, children))
                    i = end
                    continue

            if char == "<":
                autolink = _AUTOLINK.match(text, i)
                if autolink:
                    flush()
                    url = autolink.group(1)
                    segments.append(_LinkSegment(url, [_Text(url)]))
                    i = autolink.end()
                    continue

            if char in "*_":
                run = 1
                while i + run < n and text[i + run] == char:
                    run += 1
                before = text[i - 1] if i > 0 else " "
                after = text[i + run] if i + run < n else " "
                can_open = not after.isspace()
                can_close = not before.isspace()
                if char == "_":
                    can_open = can_open and not before.isalnum()
                    can_close = can_close and not after.isalnum()
                flush()
                segments.append(_Delim(char, run, base + i, can_open, can_close))
                i += run
                continue

            buffer.append(char)
            i += 1
        flush()
        return segments

    def _match_link(self, text: str, start: int) -> tuple[str, str, int] | None:
        """Match ``[label](destination "title")`` starting at an opening bracket."""
        depth = 0
        i = start
        while i < len(text):
            if text[i] == "\\":
                i += 2
                continue
            if text[i] == "[":
                depth += 1
            elif text[i] == "]":
                depth -= 1
                if depth == 0:
                    break
            i += 1
        else:
            return None
        close_label = i
        if close_label + 1 >= len(text) or text[close_label + 1] != "(":
            return None

        depth = 0
        j = close_label + 1
        while j < len(text):
            if text[j] == "\\":
                j += 2
                continue
            if text[j] == "(":
                depth += 1
            elif text[j] == ")":
                depth -= 1
                if depth == 0:
                    break
            j += 1
        else:
            return None

        target = text[close_label + 2 : j].strip()
        if target.startswith("<") and ">" in target:
            destination = target[1 : target.index(">")]
        else:
            destination = target.split()[0] if target else ""
        return text[start + 1 : close_label], _unescape(destination), j + 1

    def _resolve_emphasis(self, segments: list[_Segment]) -> list[_Segment]:
        result: list[_Segment] = []
        openers: list[int] = []

        for segment in segments:
            if not isinstance(segment, _Delim):
                result.append(segment)
                continue
            for piece in self._split_delimiter(segment):
                if piece.can_close:
                    match = None
                    for depth in range(len(openers) - 1, -1, -1):
                        opener = result[openers[depth]]
                        assert isinstance(opener, _Delim)
                        if opener.char == piece.char and opener.length == piece.length:
                            match = depth
                            break
                    if match is not None:
                        for unmatched in openers[match + 1 :]:
                            result[unmatched] = self._literal_marker(result[unmatched])
                        position = openers[match]
                        del openers[match:]
                        children = result[position + 1 :]
                        del result[position:]
                        style = SpanStyle.BOLD if piece.length == 2 else SpanStyle.ITALIC
                        result.append(_Styled(style, children))
                        continue
                if piece.can_open:
                    openers.append(len(result))
                    result.append(piece)
                else:
                    result.append(_Text(piece.marker))

        for position in openers:
            result[position] = self._literal_marker(result[position])
        return result

    @staticmethod
    def _split_delimiter(delim: _Delim) -> list[_Delim]:
        if delim.length <= 2:
            return [delim]
        if delim.length > 3:
            return [_Delim(delim.char, delim.length, delim.offset, False, False)]
        # "***" opens bold then italic and closes in the reverse order
        sizes = (1, 2) if delim.can_close and not delim.can_open else (2, 1)
        first = _Delim(delim.char, sizes[0], delim.offset, delim.can_open, delim.can_close)
        second = _Delim(delim.char, sizes[1], delim.offset + sizes[0], delim.can_open, delim.can_close)
        return [first, second]

    def _literal_marker(self, segment: _Segment) -> _Text:
        assert isinstance(segment, _Delim)
        if segment.length <= 2:
            line, column = self._source_map.locate(segment.offset)
            self._warn(line, column, f"unterminated emphasis marker '{segment.marker}'")
        return _Text(segment.marker)

    def _flatten(self, segments: list[_Segment], style: SpanStyle) -> list[Inline | Image]:
        flat: list[Inline | Image] = []
        for segment in segments:
            if isinstance(segment, _Text):
                flat.append(TextSpan(segment.text, style))
            elif isinstance(segment, _Delim):
                flat.append(TextSpan(segment.marker, style))
            elif isinstance(segment, _Code):
                flat.append(TextSpan(segment.text, SpanStyle.CODE))
            elif isinstance(segment, _Styled):
                flat.extend(self._flatten(segment.children, segment.style))
            elif isinstance(segment, _ImageSegment):
                flat.append(Image(src=segment.src, alt=segment.alt))
            elif isinstance(segment, _LinkSegment):
                inner = self._merge(self._flatten(segment.children, style))
                spans = tuple(piece for piece in inner if isinstance(piece, TextSpan))
                flat.append(Link(href=segment.href, runs=spans))
                flat.extend(piece for piece in inner if isinstance(piece, Image))
        return flat

    @staticmethod
    def _merge(pieces: list[Inline | Image]) -> list[Inline | Image]:
        merged: list[Inline | Image] = []
        for piece in pieces:
            previous = merged[-1] if merged else None
            if (
                isinstance(piece, TextSpan)
                and isinstance(previous, TextSpan)
                and previous.style is piece.style
            ):
                merged[-1] = TextSpan(previous.text + piece.text, piece.style)
            elif isinstance(piece, TextSpan) and not piece.text:
                continue
            else:
                merged.append(piece)
        return merged

    def _split_images(self, pieces: list[Inline | Image]) -> tuple[Run, list[Image]]:
        images = [piece for piece in pieces if isinstance(piece, Image)]
        inline = [piece for piece in pieces if not isinstance(piece, Image)]
        return self._trim(self._merge(inline)), images

    @staticmethod
    def _trim(pieces: list) -> Run:
        """Strip whitespace at run edges; an all-blank run becomes empty."""
        pieces = list(pieces)
        if not any(piece.text.strip() for piece in pieces):
            return ()
        if isinstance(pieces[0], TextSpan):
            pieces[0] = TextSpan(pieces[0].text.lstrip(), pieces[0].style)
        if isinstance(pieces[-1], TextSpan):
            pieces[-1] = TextSpan(pieces[-1].text.rstrip(), pieces[-1].style)
        return tuple(piece for piece in pieces if not isinstance(piece, TextSpan) or piece.text)

    def _warn(self, line: int, column: int, message: str) -> None:
        self._warnings.append(ParseWarning(line=line, column=column, message=message))


class MarkdownParser:
    """Parses normalized Markdown into a ``Document`` tree.

    Each call works on its own state, so one parser can be shared by
    concurrent render threads.
    """

    def parse(self, markup: str) -> ParseResult:
        """Parse Markdown text.

        Args:
            markup: Markdown produced by the content extractor

        Returns:
            ParseResult with the document and any recoverable defects
        """
        return _BlockParser().parse(markup)


def parse_markup(markup: str) -> ParseResult:
    """Parse Markdown with a fresh parser.

    Args:
        markup: Markdown text

    Returns:
        ParseResult
    """
    return MarkdownParser().parse(markup)
