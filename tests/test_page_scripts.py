"""
页面内脚本测试：在真实 Chromium 中执行图片收集与 console 接管脚本

本地没有安装 Chromium 时跳过（playwright install chromium）。
"""
from contextlib import asynccontextmanager

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from browser_mcp.browser_manager import capture_console
from browser_mcp.errors import ElementNotFound
from browser_mcp.images import ImagePipeline
from browser_mcp.models import CSS_BACKGROUND, IMG_TAG

pytestmark = pytest.mark.browser

PAGE_URL = "https://example.com/gallery/index.html"


@asynccontextmanager
async def served_page(html: str):
    """打开一个以 PAGE_URL 为地址的页面，其余请求一律拦截"""
    async with async_playwright() as playwright:
        try:
            browser = await playwright.chromium.launch(headless=True)
        except PlaywrightError as e:
            pytest.skip(f"Chromium 不可用: {str(e).splitlines()[0]}")
        try:
            page = await browser.new_page()

            async def route(request_route):
                if request_route.request.url == PAGE_URL:
                    await request_route.fulfill(body=html, content_type="text/html")
                else:
                    await request_route.abort()

            await page.route("**/*", route)
            await page.goto(PAGE_URL)
            yield page
        finally:
            await browser.close()


# =============================================================================
# 图片收集
# =============================================================================

@pytest.mark.asyncio
async def test_duplicate_img_tags_collapse_in_document_order():
    html = """
        <img src="/logo.png" alt="Logo">
        <img src="photos/a.png" alt="A">
        <img src="https://example.com/logo.png" alt="Again">
    """
    async with served_page(html) as page:
        images = await ImagePipeline().extract(page, include_background_images=False)

    assert [image.to_dict() for image in images] == [
        {"url": "https://example.com/logo.png", "source_type": IMG_TAG, "alt": "Logo"},
        {"url": "https://example.com/gallery/photos/a.png", "source_type": IMG_TAG, "alt": "A"},
    ]


@pytest.mark.asyncio
async def test_scope_limits_collection():
    html = """
        <img src="/outside.png">
        <div id="gallery">
            <img src="/inside.png">
            <span style="background-image: url('/inside-bg.png')"></span>
        </div>
        <img id="hero" src="/hero.png">
    """
    async with served_page(html) as page:
        scoped = await ImagePipeline().extract(page, selector="#gallery")
        self_match = await ImagePipeline().extract(page, selector="#hero")
        unscoped = await ImagePipeline().extract(page)

    assert [(image.url, image.source_type) for image in scoped] == [
        ("https://example.com/inside.png", IMG_TAG),
        ("https://example.com/inside-bg.png", CSS_BACKGROUND),
    ]
    assert [image.url for image in self_match] == ["https://example.com/hero.png"]
    assert [image.url for image in unscoped] == [
        "https://example.com/outside.png",
        "https://example.com/inside.png",
        "https://example.com/hero.png",
        "https://example.com/inside-bg.png",
    ]


@pytest.mark.asyncio
async def test_layered_background_yields_each_url():
    html = """
        <div style="background-image: url('/bg1.png'), linear-gradient(red, blue), url('bg2.jpg')">x</div>
    """
    async with served_page(html) as page:
        images = await ImagePipeline().extract(page)

    assert [(image.url, image.source_type) for image in images] == [
        ("https://example.com/bg1.png", CSS_BACKGROUND),
        ("https://example.com/gallery/bg2.jpg", CSS_BACKGROUND),
    ]


@pytest.mark.asyncio
async def test_unmatched_scope_raises():
    async with served_page("<img src='/a.png'>") as page:
        with pytest.raises(ElementNotFound):
            await ImagePipeline().extract(page, selector="#nowhere")


# =============================================================================
# console 接管
# =============================================================================

@pytest.mark.asyncio
async def test_console_is_restored_after_throwing_script():
    async with served_page("<p>console</p>") as page:
        await page.evaluate("() => { window.__originalLog = console.log; }")

        with pytest.raises(PlaywrightError, match="boom"):
            async with capture_console(page) as output:
                await page.evaluate("() => { console.log('before', 1); throw new Error('boom'); }")

        restored = await page.evaluate(
            "() => console.log === window.__originalLog && !('__mcpConsoleCapture' in window)"
        )

    assert output == ["[log] before 1"]
    assert restored is True
