"""Text shaping with a font cascade."""

from inkreader.text.shaper import FontCascade, FontFace, TextShaper

__all__ = ["FontCascade", "FontFace", "TextShaper"]
