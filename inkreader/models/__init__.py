"""Value types shared by the pipeline stages."""

from inkreader.models.document import (
    BlockQuote,
    CodeBlock,
    Document,
    DocumentNode,
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
)
from inkreader.models.input import NEXT, PREVIOUS, InputEvent, InputKind
from inkreader.models.job import JobStatus, RenderJob
from inkreader.models.layout import LayoutBox, LayoutResult, Margins, Page, PageGeometry
from inkreader.models.pagination import Error, Idle, PaginationState, Ready, Rendering, RenderResult
from inkreader.models.surface import ColorDepth, PixelSurface, SurfaceSpec

__all__ = [
    "NEXT",
    "PREVIOUS",
    "BlockQuote",
    "CodeBlock",
    "ColorDepth",
    "Document",
    "DocumentNode",
    "Error",
    "Heading",
    "Idle",
    "Image",
    "InputEvent",
    "InputKind",
    "JobStatus",
    "LayoutBox",
    "LayoutResult",
    "Link",
    "ListBlock",
    "ListItem",
    "Margins",
    "Page",
    "PageGeometry",
    "PaginationState",
    "Paragraph",
    "PixelSurface",
    "Ready",
    "RenderJob",
    "RenderResult",
    "Rendering",
    "SpanStyle",
    "SurfaceSpec",
    "Table",
    "TextSpan",
    "ThematicBreak",
]
