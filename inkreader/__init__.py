"""inkreader - captured web pages as paginated e-ink documents.

A capture (page HTML plus its URL) is posted to the ingestion server,
normalized to Markdown, parsed into a document tree, laid out into pages,
rasterized and shown on an e-ink framebuffer or a desktop preview window.

Architecture:
- extraction/: HTML cleanup and normalization
- parsing/: Markdown to document tree
- text/: font cascade and glyph shaping
- layout/: block flow and pagination
- rendering/: page rasterization and image handling
- display/: framebuffer and window backends, input mapping
- pagination/: page state machine
- pipeline/: render stages and background worker
- ingestion/: HTTP capture API

Usage:
    python -m inkreader --config config.yaml
"""

__version__ = "0.1.0"
