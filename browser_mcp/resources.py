"""
MCP 资源：控制台日志与截图

- console://logs         进程内累计的浏览器控制台日志（纯文本）
- screenshot://<name>    按名称保存的截图（PNG）
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set
from urllib.parse import quote, unquote

from mcp import types
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.session import ServerSession
from pydantic import AnyUrl

from .config import CONSOLE_LOGS_URI, SCREENSHOT_URI_PREFIX

logger = logging.getLogger(__name__)


def screenshot_uri(name: str) -> str:
    return f"{SCREENSHOT_URI_PREFIX}{quote(name, safe='')}"


class ResourceStore:
    """控制台日志和截图的内存存储"""

    def __init__(self):
        self.console_logs: List[str] = []
        self.screenshots: Dict[str, bytes] = {}

    def append_console_log(self, level: str, text: str) -> str:
        entry = f"[{level}] {text}"
        self.console_logs.append(entry)
        return entry

    def console_text(self) -> str:
        return "\n".join(self.console_logs)

    def save_screenshot(self, name: str, data: bytes):
        self.screenshots[name] = data

    def list_resources(self) -> List[types.Resource]:
        resources = [
            types.Resource(
                uri=AnyUrl(CONSOLE_LOGS_URI),
                name="Browser console logs",
                mimeType="text/plain",
            )
        ]
        for name in self.screenshots:
            resources.append(
                types.Resource(
                    uri=AnyUrl(screenshot_uri(name)),
                    name=f"Screenshot: {name}",
                    mimeType="image/png",
                )
            )
        return resources

    def read(self, uri: str) -> ReadResourceContents:
        """
        按 URI 读取资源

        Raises:
            ValueError: 资源不存在
        """
        if uri == CONSOLE_LOGS_URI:
            return ReadResourceContents(content=self.console_text(), mime_type="text/plain")

        if uri.startswith(SCREENSHOT_URI_PREFIX):
            name = unquote(uri[len(SCREENSHOT_URI_PREFIX):])
            if name in self.screenshots:
                return ReadResourceContents(content=self.screenshots[name], mime_type="image/png")

        raise ValueError(f"Resource not found: {uri}")


class ResourceNotifier:
    """把资源变更通知发送给当前连接的 MCP 客户端"""

    def __init__(self):
        self.session: Optional[ServerSession] = None
        self._pending: Set[asyncio.Task] = set()

    def bind(self, session: Optional[ServerSession]):
        self.session = session

    def resource_updated(self, uri: str):
        self._schedule(lambda session: session.send_resource_updated(AnyUrl(uri)))

    def resource_list_changed(self):
        self._schedule(lambda session: session.send_resource_list_changed())

    def _schedule(self, send: Callable[[ServerSession], Awaitable[None]]):
        session = self.session
        if session is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._send(session, send))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, session: ServerSession, send: Callable[[ServerSession], Awaitable[None]]):
        try:
            await send(session)
        except Exception as e:
            # 客户端可能已经断开
            logger.warning(f"发送资源通知失败: {str(e)}")
