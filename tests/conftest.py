"""
测试公共夹具：Playwright 对象的假实现
"""
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from browser_mcp.browser_manager import PlaywrightBrowserManager
from browser_mcp.images import ImagePipeline
from browser_mcp.resources import ResourceStore


def make_page(url: str = "about:blank", context=None) -> MagicMock:
    page = MagicMock(name="page")
    page.url = url
    page.context = context
    page.is_closed = Mock(return_value=False)
    page.on = Mock()
    page.goto = AsyncMock()
    page.title = AsyncMock(return_value="Example Domain")
    page.query_selector = AsyncMock(return_value=MagicMock(name="element"))
    page.click = AsyncMock()
    page.fill = AsyncMock()
    page.select_option = AsyncMock()
    page.hover = AsyncMock()
    page.set_viewport_size = AsyncMock()
    page.screenshot = AsyncMock(return_value=b"\x89PNG-page")
    page.evaluate = AsyncMock()
    page.bring_to_front = AsyncMock()
    return page


def make_context() -> MagicMock:
    context = MagicMock(name="context")
    context.pages = []

    async def new_page():
        page = make_page(context=context)
        context.pages.append(page)
        return page

    context.new_page = AsyncMock(side_effect=new_page)
    return context


def make_browser() -> MagicMock:
    browser = MagicMock(name="browser")
    browser.is_connected = Mock(return_value=True)
    browser.close = AsyncMock()
    browser.contexts = []

    async def new_page():
        context = make_context()
        browser.contexts.append(context)
        return await context.new_page()

    browser.new_page = AsyncMock(side_effect=new_page)
    return browser


class FakePlaywright:
    """记录每次 chromium.launch() 的参数和返回的浏览器"""

    def __init__(self):
        self.launches: List[Dict[str, Any]] = []
        self.browsers: List[MagicMock] = []
        self.chromium = MagicMock(name="chromium")
        self.chromium.launch = AsyncMock(side_effect=self._launch)
        self.stop = AsyncMock()

    async def _launch(self, **kwargs):
        browser = make_browser()
        self.launches.append(kwargs)
        self.browsers.append(browser)
        return browser


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """隔离环境变量"""
    for name in ("BROWSER_LAUNCH_OPTIONS", "ALLOW_DANGEROUS", "DOCKER_CONTAINER"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_playwright():
    return FakePlaywright()


@pytest.fixture
def notifier():
    return Mock(name="notifier")


@pytest.fixture
def manager(fake_playwright, notifier):
    browser_manager = PlaywrightBrowserManager(
        resources=ResourceStore(),
        notifier=notifier,
        images=ImagePipeline(),
    )
    browser_manager.session.playwright = fake_playwright
    return browser_manager
