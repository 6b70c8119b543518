"""Tests for page rasterization."""

import base64

import pytest
from PIL import Image as PILImage
from conftest import png_bytes

from inkreader.layout.engine import LayoutEngine
from inkreader.models.document import Document, Paragraph, SpanStyle, TextSpan
from inkreader.models.layout import ImageRef, LayoutBox, Page, PageGeometry, ProgressBar, Rule
from inkreader.models.surface import ColorDepth, PixelSurface, SurfaceSpec
from inkreader.rendering.images import ImageStore, decode_data_uri, resize_image_for_box, to_grayscale
from inkreader.rendering.rasterizer import Rasterizer
from inkreader.text.shaper import TextShaper

pytestmark = pytest.mark.unit


@pytest.fixture
def rasterizer(shaper: TextShaper) -> Rasterizer:
    return Rasterizer(shaper)


def laid_out_page(shaper: TextShaper, geometry: PageGeometry) -> Page:
    document = Document(
        children=(
            Paragraph(runs=(TextSpan("Plain, "), TextSpan("bold", SpanStyle.BOLD), TextSpan(" and €"))),
        )
    )
    return LayoutEngine(shaper).layout(document, geometry).pages[0]


class TestRasterize:
    """Tests for Rasterizer.rasterize."""

    def test_rasterize_when_one_bit_then_packed_rows(
        self, rasterizer: Rasterizer, shaper: TextShaper, geometry: PageGeometry
    ) -> None:
        spec = SurfaceSpec(geometry.width, geometry.height, ColorDepth.ONE_BIT)

        surface = rasterizer.rasterize(laid_out_page(shaper, geometry), spec)

        assert surface.spec == spec
        assert len(surface.data) == (geometry.width + 7) // 8 * geometry.height

    def test_rasterize_when_grayscale_then_one_byte_per_pixel(
        self, rasterizer: Rasterizer, shaper: TextShaper, geometry: PageGeometry
    ) -> None:
        spec = SurfaceSpec(geometry.width, geometry.height, ColorDepth.GRAYSCALE_8)

        surface = rasterizer.rasterize(laid_out_page(shaper, geometry), spec)

        assert len(surface.data) == geometry.width * geometry.height
        assert min(surface.data) < 128
        assert max(surface.data) == 255

    def test_rasterize_when_repeated_then_identical_bytes(
        self, rasterizer: Rasterizer, shaper: TextShaper, geometry: PageGeometry
    ) -> None:
        page = laid_out_page(shaper, geometry)
        spec = SurfaceSpec(geometry.width, geometry.height)

        assert rasterizer.rasterize(page, spec) == rasterizer.rasterize(page, spec)

    def test_rasterize_when_empty_page_then_all_white(self, rasterizer: Rasterizer) -> None:
        surface = rasterizer.rasterize(Page(index=0, boxes=()), SurfaceSpec(40, 10, ColorDepth.GRAYSCALE_8))

        assert surface.data == bytes([255]) * 400

    def test_rasterize_when_rule_and_progress_then_filled_shades(self, rasterizer: Rasterizer) -> None:
        page = Page(
            index=0,
            boxes=(
                LayoutBox(0, 0, 0, 20, 2, Rule()),
                LayoutBox(0, 0, 10, 20, 10, ProgressBar(page_number=2, page_count=2)),
            ),
        )

        image = rasterizer.rasterize(page, SurfaceSpec(20, 20, ColorDepth.GRAYSCALE_8)).to_image()

        assert image.getpixel((5, 0)) == 0
        assert image.getpixel((0, 10)) == 0x55
        assert image.getpixel((10, 15)) == 0x99
        assert image.getpixel((10, 5)) == 255

    def test_rasterize_when_image_in_store_then_pixels_copied(self, rasterizer: Rasterizer) -> None:
        src = "https://example.com/black.png"
        store = ImageStore({src: png_bytes(10, 10, color=0)})
        page = Page(index=0, boxes=(LayoutBox(0, 5, 5, 10, 10, ImageRef(src=src)),))

        image = rasterizer.rasterize(page, SurfaceSpec(20, 20, ColorDepth.GRAYSCALE_8), store).to_image()

        assert image.getpixel((10, 10)) == 0
        assert image.getpixel((2, 2)) == 255

    def test_rasterize_when_image_missing_then_placeholder_fill(self, rasterizer: Rasterizer) -> None:
        page = Page(index=0, boxes=(LayoutBox(0, 0, 0, 20, 20, ImageRef(src="gone", placeholder=True)),))

        image = rasterizer.rasterize(page, SurfaceSpec(20, 20, ColorDepth.GRAYSCALE_8), ImageStore()).to_image()

        assert image.getpixel((10, 10)) == 0xEE


class TestStatusScreen:
    """Tests for Rasterizer.status_screen."""

    def test_status_screen_when_message_then_ink_near_center(self, rasterizer: Rasterizer) -> None:
        spec = SurfaceSpec(300, 200, ColorDepth.GRAYSCALE_8)

        image = rasterizer.status_screen("Loading", spec).to_image()

        assert image.crop((0, 0, 300, 40)).getextrema() == (255, 255)
        assert image.crop((50, 80, 250, 120)).getextrema()[0] < 128


class TestImages:
    """Tests for image decoding helpers."""

    def test_get_when_data_uri_then_decoded_lazily(self) -> None:
        uri = "data:image/png;base64," + base64.b64encode(png_bytes(3, 2, 100)).decode()
        store = ImageStore()

        assert store.size(uri) == (3, 2)
        assert len(store) == 1

    def test_init_when_bytes_not_an_image_then_size_unknown(self) -> None:
        store = ImageStore({"https://example.com/x.png": b"garbage"})

        assert store.get("https://example.com/x.png") is None
        assert len(store) == 0

    def test_decode_data_uri_when_percent_encoded_then_unquoted(self) -> None:
        assert decode_data_uri("data:text/plain,a%20b") == b"a b"
        assert decode_data_uri("not-a-data-uri") is None

    def test_to_grayscale_when_transparent_then_flattened_on_white(self) -> None:
        transparent = PILImage.new("RGBA", (2, 2), (0, 0, 0, 0))

        assert to_grayscale(transparent).getpixel((0, 0)) == 255

    def test_resize_image_for_box_when_smaller_then_not_upscaled(self) -> None:
        boxed = resize_image_for_box(PILImage.new("L", (4, 4), 0), 10, 10)

        assert boxed.size == (10, 10)
        assert boxed.getpixel((0, 0)) == 255
        assert boxed.getpixel((5, 5)) == 0


class TestPixelSurface:
    def test_from_image_when_unsupported_mode_then_raises(self) -> None:
        with pytest.raises(ValueError, match="Unsupported"):
            PixelSurface.from_image(PILImage.new("RGB", (1, 1)))
