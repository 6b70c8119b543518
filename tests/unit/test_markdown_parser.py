"""Tests for the tolerant Markdown parser."""

import pytest

from inkreader.models.document import (
    BlockQuote,
    CodeBlock,
    Heading,
    Image,
    Link,
    ListBlock,
    ListItem,
    Paragraph,
    SpanStyle,
    Table,
    TextSpan,
    ThematicBreak,
    run_text,
)
from inkreader.parsing.markdown_parser import MAX_LIST_DEPTH, MarkdownParser, parse_markup

pytestmark = pytest.mark.unit


class TestBlocks:
    """Block-level structure."""

    def test_parse_when_headings_and_paragraphs_then_source_order_kept(self) -> None:
        result = parse_markup("# Title\n\nFirst para\ncontinues here.\n\n## Sub\n\nSecond para.")

        children = result.document.children
        assert [type(child) for child in children] == [Heading, Paragraph, Heading, Paragraph]
        assert children[0].level == 1
        assert run_text(children[1].runs) == "First para continues here."
        assert children[2].level == 2
        assert result.warnings == ()

    def test_parse_when_fenced_code_then_text_verbatim(self) -> None:
        result = parse_markup("```python\ndef f():\n    return *x*\n```")

        (block,) = result.document.children
        assert block == CodeBlock(language="python", text="def f():\n    return *x*")

    def test_parse_when_unordered_list_then_items_in_order(self) -> None:
        result = parse_markup("- one\n- two\n  - nested\n- three")

        (block,) = result.document.children
        assert isinstance(block, ListBlock)
        assert block.ordered is False
        assert len(block.items) == 3
        assert [run_text(item.children[0].runs) for item in block.items] == ["one", "two", "three"]
        (_, nested) = block.items[1].children
        assert isinstance(nested, ListBlock)
        assert nested.items == (ListItem(children=(Paragraph(runs=(TextSpan("nested"),)),)),)

    def test_parse_when_item_has_two_paragraphs_then_one_item_holds_both(self) -> None:
        result = parse_markup("1. first para\n\n   second para of item one\n2. item two")

        (block,) = result.document.children
        assert block.ordered is True
        assert len(block.items) == 2
        first, second = block.items
        assert [run_text(child.runs) for child in first.children] == ["first para", "second para of item one"]
        assert [run_text(child.runs) for child in second.children] == ["item two"]

    def test_parse_when_item_empty_then_item_kept_without_children(self) -> None:
        result = parse_markup("-\n- two")

        (block,) = result.document.children
        assert block.items[0] == ListItem(children=())
        assert run_text(block.items[1].children[0].runs) == "two"

    def test_parse_when_lists_nested_too_deep_then_flattened_with_warning(self) -> None:
        depth = MAX_LIST_DEPTH + 10
        markup = "\n".join("  " * level + f"- level{level}" for level in range(depth))

        result = parse_markup(markup)

        node = result.document.children[0]
        for _ in range(MAX_LIST_DEPTH):
            node = node.items[0].children[1]
            assert isinstance(node, ListBlock)
        (deepest,) = node.items
        (paragraph,) = deepest.children
        assert run_text(paragraph.runs).startswith(f"level{MAX_LIST_DEPTH} - level{MAX_LIST_DEPTH + 1}")
        (warning,) = result.warnings
        assert warning.message == f"list nested deeper than {MAX_LIST_DEPTH} levels"
        assert warning.line == MAX_LIST_DEPTH + 1

    def test_parse_when_ordered_list_then_start_number_kept(self) -> None:
        result = parse_markup("3. three\n4. four")

        (block,) = result.document.children
        assert block.ordered is True
        assert block.start == 3
        assert len(block.items) == 2

    def test_parse_when_pipe_table_then_rows_padded_to_header(self) -> None:
        result = parse_markup("| A | B |\n| --- | --- |\n| 1 |\n| x \\| y | 2 |")

        (table,) = result.document.children
        assert isinstance(table, Table)
        assert [[run_text(cell) for cell in row] for row in table.rows] == [
            ["A", "B"],
            ["1", ""],
            ["x | y", "2"],
        ]

    def test_parse_when_quote_and_rule_then_both_present(self) -> None:
        result = parse_markup("> quoted\n> text\n\n---\n\nafter")

        children = result.document.children
        assert isinstance(children[0], BlockQuote)
        assert run_text(children[0].runs) == "quoted text"
        assert isinstance(children[1], ThematicBreak)
        assert isinstance(children[2], Paragraph)

    def test_parse_when_image_inside_paragraph_then_split_in_order(self) -> None:
        result = parse_markup("before ![Alt text](https://example.com/i.png) after")

        children = result.document.children
        assert [type(child) for child in children] == [Paragraph, Image, Paragraph]
        assert children[1] == Image(src="https://example.com/i.png", alt="Alt text")

    def test_parse_when_code_fence_unterminated_then_paragraph_and_warning(self) -> None:
        result = parse_markup("```\nnever closed")

        assert isinstance(result.document.children[0], Paragraph)
        assert [w.message for w in result.warnings] == ["unterminated code fence"]

    def test_parse_when_empty_input_then_empty_document(self) -> None:
        result = MarkdownParser().parse("")

        assert result.document.children == ()
        assert result.warnings == ()


class TestInline:
    """Inline spans, links and recovery."""

    def test_parse_when_emphasis_then_styles_assigned(self) -> None:
        result = parse_markup("plain **bold** and *italic* and `code`")

        (para,) = result.document.children
        assert para.runs == (
            TextSpan("plain "),
            TextSpan("bold", SpanStyle.BOLD),
            TextSpan(" and "),
            TextSpan("italic", SpanStyle.ITALIC),
            TextSpan(" and "),
            TextSpan("code", SpanStyle.CODE),
        )

    def test_parse_when_styles_nested_then_innermost_wins(self) -> None:
        result = parse_markup("**bold *inner* bold**")

        (para,) = result.document.children
        assert para.runs == (
            TextSpan("bold ", SpanStyle.BOLD),
            TextSpan("inner", SpanStyle.ITALIC),
            TextSpan(" bold", SpanStyle.BOLD),
        )

    def test_parse_when_link_then_href_and_runs(self) -> None:
        result = parse_markup("see [the **docs**](https://example.com/docs \"Docs\") now")

        (para,) = result.document.children
        link = para.runs[1]
        assert isinstance(link, Link)
        assert link.href == "https://example.com/docs"
        assert link.runs == (TextSpan("the "), TextSpan("docs", SpanStyle.BOLD))

    def test_parse_when_autolink_then_link_with_url_text(self) -> None:
        result = parse_markup("visit <https://example.com>")

        (para,) = result.document.children
        assert para.runs[1] == Link(href="https://example.com", runs=(TextSpan("https://example.com"),))

    def test_parse_when_escaped_markers_then_literal(self) -> None:
        result = parse_markup(r"2 \* 3 \_ok\_")

        (para,) = result.document.children
        assert para.runs == (TextSpan("2 * 3 _ok_"),)

    def test_parse_when_intraword_underscore_then_not_emphasis(self) -> None:
        result = parse_markup("snake_case_name")

        (para,) = result.document.children
        assert para.runs == (TextSpan("snake_case_name"),)
        assert result.warnings == ()

    def test_parse_when_emphasis_unterminated_then_plain_text_and_warning(self) -> None:
        result = parse_markup("Before.\n\nHello *world\n\nAfter.")

        children = result.document.children
        assert [type(child) for child in children] == [Paragraph, Paragraph, Paragraph]
        assert children[1].runs == (TextSpan("Hello *world"),)
        assert run_text(children[0].runs) == "Before."
        assert run_text(children[2].runs) == "After."
        (warning,) = result.warnings
        assert (warning.line, warning.column) == (3, 7)
        assert warning.message == "unterminated emphasis marker '*'"

    def test_parse_when_called_twice_then_structurally_equal(self) -> None:
        markup = "# T\n\n- a *b*\n- c\n\n| x | y |\n|---|---|\n| 1 | 2 |"
        parser = MarkdownParser()

        assert parser.parse(markup) == parser.parse(markup)
