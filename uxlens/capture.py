"""
Screenshot Capture Module

Captures web pages into in-memory screenshots using Playwright, and loads
existing image files from disk.
"""

import struct
from pathlib import Path
from typing import Optional, Union

from playwright.async_api import async_playwright, TimeoutError as PlaywrightTimeout

from .errors import InvalidInput
from .models import BatchItem, ScreenshotData, ScreenshotMetadata


PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class ScreenshotCapturer:
    """
    Captures screenshots of web pages using a headless Playwright browser.

    Instances are async callables taking a BatchItem, so a capturer can be
    handed to BatchController directly as its screenshot source.

    Example:
        capturer = ScreenshotCapturer(viewport={"width": 390, "height": 844}, device_pixel_ratio=3)
        screenshot = await capturer.capture(
            url="https://shop.example.com/cart",
            wait_for="#checkout"
        )
    """

    def __init__(
        self,
        viewport: Optional[dict] = None,
        device_pixel_ratio: float = 1.0,
        full_page: bool = True,
        wait_timeout: int = 30000
    ):
        """
        Initialize screenshot capturer.

        Args:
            viewport: Viewport dimensions {"width": int, "height": int}
                     Defaults to 1920x1080
            device_pixel_ratio: Device scale factor of the emulated screen
            full_page: Capture the full scrollable page (True) or the viewport only
            wait_timeout: Milliseconds to wait for navigation and elements
        """
        self.viewport = viewport or {"width": 1920, "height": 1080}
        self.device_pixel_ratio = device_pixel_ratio
        self.full_page = full_page
        self.wait_timeout = wait_timeout

    async def __call__(self, item: BatchItem) -> ScreenshotData:
        return await self.capture(item.url)

    async def capture(
        self,
        url: str,
        selector: Optional[str] = None,
        wait_for: Optional[str] = None,
        full_page: Optional[bool] = None
    ) -> ScreenshotData:
        """
        Capture screenshot of a web page.

        Workflow:
        1. Launch headless Chromium browser
        2. Navigate to URL
        3. Optionally click selector (e.g., open a menu or tab)
        4. Wait for element to render
        5. Capture PNG bytes into memory

        Args:
            url: Page URL to capture (file:// or http(s)://)
            selector: CSS selector to click before capture
            wait_for: CSS selector to wait for before capture
            full_page: Override the capturer's full_page setting

        Returns:
            ScreenshotData with PNG bytes and viewport metadata

        Raises:
            RuntimeError: If the browser fails to launch, navigate or find elements
        """
        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(headless=True)
                try:
                    page = await browser.new_page(
                        viewport=self.viewport,
                        device_scale_factor=self.device_pixel_ratio
                    )

                    await page.goto(url, wait_until="networkidle", timeout=self.wait_timeout)

                    if selector:
                        try:
                            await page.click(selector, timeout=self.wait_timeout)
                        except PlaywrightTimeout:
                            raise RuntimeError(f"Failed to find clickable element: {selector}")

                    if wait_for:
                        try:
                            await page.wait_for_selector(wait_for, timeout=self.wait_timeout)
                        except PlaywrightTimeout:
                            raise RuntimeError(f"Timeout waiting for element: {wait_for}")

                    # Small delay to ensure rendering completes
                    await page.wait_for_timeout(500)

                    buffer = await page.screenshot(
                        full_page=self.full_page if full_page is None else full_page,
                        type="png"
                    )
                finally:
                    await browser.close()

        except Exception as e:
            raise RuntimeError(f"Screenshot capture failed: {str(e)}") from e

        width, height = png_dimensions(buffer)
        return ScreenshotData(
            buffer=buffer,
            path=url,
            metadata=ScreenshotMetadata(
                width=width or self.viewport["width"],
                height=height or self.viewport["height"],
                device_pixel_ratio=self.device_pixel_ratio
            )
        )


def load_screenshot(path: Union[str, Path], device_pixel_ratio: float = 1.0) -> ScreenshotData:
    """
    Load an image file as ScreenshotData.

    Dimensions are read from the PNG header; other formats get 0x0.

    Raises:
        InvalidInput: If the file is missing or empty
    """
    path = Path(path)
    try:
        buffer = path.read_bytes()
    except OSError as e:
        raise InvalidInput(f"Cannot read screenshot {path}: {e}") from e

    if not buffer:
        raise InvalidInput(f"Screenshot file is empty: {path}")

    width, height = png_dimensions(buffer)
    return ScreenshotData(
        buffer=buffer,
        path=str(path),
        metadata=ScreenshotMetadata(
            width=width,
            height=height,
            device_pixel_ratio=device_pixel_ratio
        )
    )


def png_dimensions(buffer: bytes) -> tuple[int, int]:
    """Width and height from a PNG IHDR chunk, or (0, 0) for anything else"""
    if len(buffer) < 24 or not buffer.startswith(PNG_SIGNATURE) or buffer[12:16] != b"IHDR":
        return 0, 0
    return struct.unpack(">II", buffer[16:24])
