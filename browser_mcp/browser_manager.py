"""
Playwright 浏览器管理器核心类

负责唯一的浏览器/页面实例的生命周期：
- 合并环境变量默认值与调用方的启动参数并做安全校验
- 启动参数变化或浏览器断开时重启浏览器，否则复用
- 页面交互操作（导航、点击、输入、截图、执行脚本、标签页）

调用由 MCP 分发层串行执行，这里不加锁。
"""
import copy
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple

from playwright.async_api import Browser, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from .config import (
    CONSOLE_LOGS_URI,
    DESKTOP_BASE_PROFILE,
    DOCKER_BASE_PROFILE,
    SCREENSHOT_HEIGHT,
    SCREENSHOT_WIDTH,
    running_in_docker,
)
from .element_analysis import analyze_element
from .errors import (
    ElementNotFound,
    InteractionFailure,
    ScriptExecutionFailure,
    SessionLaunchFailure,
)
from .images import ImagePipeline
from .launch_options import (
    load_env_launch_options,
    merge_launch_options,
    to_playwright_kwargs,
    validate_launch_options,
)
from .models import BrowserSession, DownloadResult, ElementAnalysis, ExtractedImage, LaunchOptions
from .resources import ResourceNotifier, ResourceStore

logger = logging.getLogger(__name__)

_INSTALL_CONSOLE_CAPTURE_JS = """
() => {
    if (window.__mcpConsoleCapture) {
        return;
    }
    const logs = [];
    const original = {};
    for (const level of ['log', 'info', 'warn', 'error']) {
        original[level] = console[level];
        console[level] = (...args) => {
            logs.push(`[${level}] ${args.map(String).join(' ')}`);
            original[level].apply(console, args);
        };
    }
    window.__mcpConsoleCapture = { logs, original };
}
"""

_UNINSTALL_CONSOLE_CAPTURE_JS = """
() => {
    const capture = window.__mcpConsoleCapture;
    if (!capture) {
        return [];
    }
    for (const [level, fn] of Object.entries(capture.original)) {
        console[level] = fn;
    }
    delete window.__mcpConsoleCapture;
    return capture.logs;
}
"""


@asynccontextmanager
async def capture_console(page: Page):
    """
    在页面中临时接管 console 输出

    退出时（无论脚本是否成功）恢复原始 console，并把捕获的输出写入 yield 的列表。
    """
    output: List[str] = []
    await page.evaluate(_INSTALL_CONSOLE_CAPTURE_JS)
    try:
        yield output
    finally:
        try:
            output.extend(await page.evaluate(_UNINSTALL_CONSOLE_CAPTURE_JS) or [])
        except PlaywrightError as e:
            # 脚本触发导航时原页面上下文已销毁
            logger.warning(f"恢复 console 失败: {str(e)}")


class PlaywrightBrowserManager:
    """Playwright 浏览器管理器"""

    def __init__(
        self,
        resources: Optional[ResourceStore] = None,
        notifier: Optional[ResourceNotifier] = None,
        images: Optional[ImagePipeline] = None,
    ):
        self.session = BrowserSession()
        self.resources = resources or ResourceStore()
        self.notifier = notifier or ResourceNotifier()
        self.images = images or ImagePipeline()
        self._observed_pages: List[Page] = []

    # 会话管理
    async def ensure_page(
        self,
        launch_options: Optional[LaunchOptions] = None,
        allow_dangerous: bool = False,
    ) -> Page:
        """
        返回可用的页面，必要时（重新）启动浏览器

        Args:
            launch_options: 本次调用指定的启动参数
            allow_dangerous: 是否允许危险启动参数

        Raises:
            SecurityPolicyViolation: 合并后的启动参数包含危险标志
            SessionLaunchFailure: 浏览器启动失败
        """
        requested = launch_options or {}
        effective = merge_launch_options(load_env_launch_options(), requested)
        validate_launch_options(effective, allow_dangerous)

        if self._should_restart(requested):
            await self._close_browser()

        if self.session.browser is None:
            await self._launch(effective, requested)
        elif self.session.page is None or self.session.page.is_closed():
            self.session.page = await self._first_page(self.session.browser)

        return self.session.page

    def _should_restart(self, requested: LaunchOptions) -> bool:
        browser = self.session.browser
        if browser is None:
            return False
        if not browser.is_connected():
            logger.info("浏览器已断开，将重新启动")
            return True
        # 只与上次调用方传入的参数比较，环境变量默认值的变化不触发重启
        if requested and requested != self.session.last_launch_options:
            logger.info("启动参数已变化，将重新启动浏览器")
            return True
        return False

    async def _launch(self, effective: LaunchOptions, requested: LaunchOptions):
        base_profile = DOCKER_BASE_PROFILE if running_in_docker() else DESKTOP_BASE_PROFILE
        options = merge_launch_options(base_profile, effective)

        try:
            if self.session.playwright is None:
                self.session.playwright = await async_playwright().start()
            browser = await self.session.playwright.chromium.launch(**to_playwright_kwargs(options))
        except PlaywrightError as e:
            raise SessionLaunchFailure(f"Failed to launch browser: {str(e)}") from e

        logger.info(f"浏览器已启动, headless={options.get('headless')}")
        self.session.browser = browser
        self.session.last_launch_options = copy.deepcopy(requested)
        self.session.page = await self._first_page(browser)

    async def _first_page(self, browser: Browser) -> Page:
        for context in browser.contexts:
            for page in context.pages:
                if not page.is_closed():
                    self._observe_console(page)
                    return page
        page = await browser.new_page()
        self._observe_console(page)
        return page

    def _observe_console(self, page: Page):
        if any(observed is page for observed in self._observed_pages):
            return

        def handle_console(msg):
            self.resources.append_console_log(msg.type, msg.text)
            self.notifier.resource_updated(CONSOLE_LOGS_URI)

        page.on("console", handle_console)
        self._observed_pages.append(page)

    async def _close_browser(self):
        browser = self.session.browser
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning(f"关闭浏览器失败，视为已关闭: {str(e)}")
        self.session.reset()
        self._observed_pages = []

    async def close(self):
        """关闭浏览器并停止 Playwright"""
        await self._close_browser()
        self.session.last_launch_options = None
        if self.session.playwright is not None:
            await self.session.playwright.stop()
            self.session.playwright = None

    def _all_pages(self) -> List[Page]:
        browser = self.session.browser
        if browser is None:
            return []
        return [page for context in browser.contexts for page in context.pages if not page.is_closed()]

    # 导航
    async def browser_navigate(
        self,
        url: str,
        launch_options: Optional[LaunchOptions] = None,
        allow_dangerous: bool = False,
    ) -> Dict[str, Any]:
        page = await self.ensure_page(launch_options, allow_dangerous)
        await page.goto(url)
        return {"url": page.url, "title": await page.title(), "status": "navigated"}

    # 页面交互
    async def _require_element(self, page: Page, selector: str):
        try:
            element = await page.query_selector(selector)
        except PlaywrightError as e:
            raise InteractionFailure(f"Invalid selector {selector}: {str(e)}") from e
        if element is None:
            raise ElementNotFound(selector)
        return element

    async def browser_click(self, selector: str) -> Dict[str, Any]:
        page = await self.ensure_page()
        await self._require_element(page, selector)
        try:
            await page.click(selector)
        except PlaywrightError as e:
            raise InteractionFailure(f"Failed to click {selector}: {str(e)}") from e
        return {"action": "clicked", "selector": selector}

    async def browser_fill(self, selector: str, value: str) -> Dict[str, Any]:
        page = await self.ensure_page()
        await self._require_element(page, selector)
        try:
            await page.fill(selector, value)
        except PlaywrightError as e:
            raise InteractionFailure(f"Failed to fill {selector}: {str(e)}") from e
        return {"action": "filled", "selector": selector, "value": value}

    async def browser_select(self, selector: str, value: str) -> Dict[str, Any]:
        page = await self.ensure_page()
        await self._require_element(page, selector)
        try:
            await page.select_option(selector, value)
        except PlaywrightError as e:
            raise InteractionFailure(f"Failed to select {selector}: {str(e)}") from e
        return {"action": "selected", "selector": selector, "value": value}

    async def browser_hover(self, selector: str) -> Dict[str, Any]:
        page = await self.ensure_page()
        await self._require_element(page, selector)
        try:
            await page.hover(selector)
        except PlaywrightError as e:
            raise InteractionFailure(f"Failed to hover {selector}: {str(e)}") from e
        return {"action": "hovered", "selector": selector}

    # 截图
    async def browser_screenshot(
        self,
        name: str,
        selector: Optional[str] = None,
        width: int = SCREENSHOT_WIDTH,
        height: int = SCREENSHOT_HEIGHT,
    ) -> bytes:
        """截取页面或元素，并保存为 screenshot://<name> 资源"""
        page = await self.ensure_page()
        await page.set_viewport_size({"width": int(width), "height": int(height)})

        if selector:
            element = await self._require_element(page, selector)
            data = await element.screenshot()
        else:
            data = await page.screenshot()

        self.resources.save_screenshot(name, data)
        self.notifier.resource_list_changed()
        return data

    # 脚本执行
    async def browser_evaluate(self, script: str) -> Tuple[Any, List[str]]:
        """执行脚本，返回 (结果, 捕获的 console 输出)"""
        page = await self.ensure_page()
        async with capture_console(page) as output:
            try:
                result = await page.evaluate(script)
            except PlaywrightError as e:
                raise ScriptExecutionFailure(f"Script execution failed: {str(e)}") from e
        return result, output

    # 图片
    async def browser_extract_images(
        self,
        selector: Optional[str] = None,
        include_background_images: bool = True,
    ) -> List[ExtractedImage]:
        page = await self.ensure_page()
        return await self.images.extract(page, selector, include_background_images)

    async def browser_download_images(
        self,
        image_urls: List[str],
        output_folder: str,
        name_prefix: Optional[str] = None,
    ) -> List[DownloadResult]:
        await self.ensure_page()
        return await self.images.download(image_urls, output_folder, name_prefix)

    async def browser_analyze_element(
        self,
        selector: str,
        include_styles: bool = True,
        max_depth: int = 10,
        include_siblings: bool = False,
    ) -> ElementAnalysis:
        page = await self.ensure_page()
        return await analyze_element(page, selector, include_styles, max_depth, include_siblings)

    # 状态与标签页管理
    async def browser_status(self) -> Dict[str, Any]:
        browser = self.session.browser
        if browser is None:
            return {"status": "not_launched", "connected": False, "tabs": 0}

        pages = self._all_pages()
        page = self.session.page
        active = next((i for i, p in enumerate(pages) if p is page), None)
        return {
            "status": "running" if browser.is_connected() else "disconnected",
            "connected": browser.is_connected(),
            "tabs": len(pages),
            "active_tab": active,
            "url": page.url if page is not None else None,
            "launch_options": self.session.last_launch_options,
        }

    async def browser_list_tabs(self) -> List[Dict[str, Any]]:
        await self.ensure_page()
        tabs = []
        for index, page in enumerate(self._all_pages()):
            tabs.append({
                "index": index,
                "url": page.url,
                "title": await page.title(),
                "active": page is self.session.page,
            })
        return tabs

    async def browser_switch_tab(self, index: int) -> Dict[str, Any]:
        await self.ensure_page()
        pages = self._all_pages()
        if index < 0 or index >= len(pages):
            raise InteractionFailure(f"Tab {index} not found ({len(pages)} tabs open)")
        page = pages[index]
        await page.bring_to_front()
        self._observe_console(page)
        self.session.page = page
        return {"action": "switched", "tab_index": index, "url": page.url}

    async def browser_new_tab(self, url: Optional[str] = None) -> Dict[str, Any]:
        current = await self.ensure_page()
        page = await current.context.new_page()
        self._observe_console(page)
        if url:
            await page.goto(url)
        self.session.page = page
        return {
            "action": "new_tab",
            "tab_index": len(self._all_pages()) - 1,
            "url": page.url,
        }
