"""
Capture strategies: turn a prepared page into the requested output.

STRATEGIES maps every CaptureFormat to exactly one strategy; anything that
is not in the table was rejected before a rendering context was taken.
"""
import json
from io import BytesIO
from typing import Dict

from PIL import Image, UnidentifiedImageError
from playwright.async_api import Error as PlaywrightError, Page

from .errors import CaptureError
from .models import CaptureFormat, CaptureOptions, CaptureResult

PERFORMANCE_ENTRIES_JS = """
(entryType) => performance.getEntriesByType(entryType).map((entry) => entry.toJSON())
"""


class CaptureStrategy:
    format: CaptureFormat

    def content_type(self, options: CaptureOptions) -> str:
        raise NotImplementedError

    async def render(self, page: Page, options: CaptureOptions):
        raise NotImplementedError

    async def capture(self, page: Page, options: CaptureOptions) -> CaptureResult:
        try:
            payload = await self.render(page, options)
        except PlaywrightError as e:
            raise CaptureError(f"{self.format.value} capture failed: {e}") from e
        return CaptureResult(payload=payload, content_type=self.content_type(options))


class ScreenshotStrategy(CaptureStrategy):
    format = CaptureFormat.IMAGE

    def content_type(self, options: CaptureOptions) -> str:
        return f"image/{options.image_type}"

    async def render(self, page: Page, options: CaptureOptions) -> bytes:
        screenshot_options = {'full_page': options.full_page, 'type': options.image_type}
        if options.image_type == 'webp':
            # Chromium screenshots come as PNG or JPEG only
            screenshot_options['type'] = 'png'
        elif options.image_type == 'jpeg' and options.quality is not None:
            screenshot_options['quality'] = options.quality

        screenshot_buffer = await page.screenshot(**screenshot_options)
        if options.image_type == 'webp':
            return _png_to_webp(screenshot_buffer, options.quality)
        return screenshot_buffer


def _png_to_webp(png_bytes: bytes, quality) -> bytes:
    try:
        with Image.open(BytesIO(png_bytes)) as image:
            output = BytesIO()
            if quality is None:
                image.save(output, format="WEBP", lossless=True)
            else:
                image.save(output, format="WEBP", quality=quality)
    except (UnidentifiedImageError, OSError) as e:
        raise CaptureError(f"WEBP encoding failed: {e}") from e
    return output.getvalue()


class PdfStrategy(CaptureStrategy):
    format = CaptureFormat.PDF

    def content_type(self, options: CaptureOptions) -> str:
        return "application/pdf"

    async def render(self, page: Page, options: CaptureOptions) -> bytes:
        pdf_options = {
            'format': options.paper_format,
            'landscape': options.landscape,
            'print_background': options.print_background,
            'scale': options.scale,
        }
        if options.margin is not None:
            pdf_options['margin'] = {k: v for k, v in options.margin.model_dump().items() if v is not None}
        if options.page_ranges:
            pdf_options['page_ranges'] = options.page_ranges
        return await page.pdf(**pdf_options)


class ContentStrategy(CaptureStrategy):
    format = CaptureFormat.CONTENT

    def content_type(self, options: CaptureOptions) -> str:
        return "text/html"

    async def render(self, page: Page, options: CaptureOptions) -> str:
        return await page.content()


class PerformanceStrategy(CaptureStrategy):
    format = CaptureFormat.PERFORMANCE

    def content_type(self, options: CaptureOptions) -> str:
        return "application/json"

    async def render(self, page: Page, options: CaptureOptions) -> str:
        navigation = await page.evaluate(PERFORMANCE_ENTRIES_JS, "navigation")
        resource = await page.evaluate(PERFORMANCE_ENTRIES_JS, "resource")
        return json.dumps({"navigation": navigation, "resource": resource})


STRATEGIES: Dict[CaptureFormat, CaptureStrategy] = {
    strategy.format: strategy
    for strategy in (ScreenshotStrategy(), PdfStrategy(), ContentStrategy(), PerformanceStrategy())
}


def strategy_for(capture_format: CaptureFormat) -> CaptureStrategy:
    return STRATEGIES[capture_format]
