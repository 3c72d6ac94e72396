#!/usr/bin/env python3
"""
基于官方 MCP SDK 的浏览器自动化 SSE 服务器
使用 mcp 官方包实现 SSE 传输

项目结构：
- browser_mcp/
  ├── __init__.py          # 模块导出
  ├── config.py            # 配置常量
  ├── models.py            # 数据模型
  ├── launch_options.py    # 启动参数合并与安全校验
  ├── browser_manager.py   # 浏览器管理器（核心逻辑）
  ├── images.py            # 图片提取与下载
  ├── resources.py         # console / screenshot 资源
  └── tools.py             # MCP 工具定义
"""
import logging
from contextlib import asynccontextmanager

from mcp.server import NotificationOptions, Server
from mcp.server.sse import SseServerTransport
from pydantic import AnyUrl
from starlette.applications import Starlette
from starlette.responses import JSONResponse, Response
from starlette.routing import Mount, Route

from browser_mcp import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    PlaywrightBrowserManager,
    ResourceNotifier,
    ResourceStore,
    create_tools,
    handle_tool_call,
)
from browser_mcp.config import LOG_LEVEL

# 配置日志
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# 全局资源与浏览器管理器实例
resource_store = ResourceStore()
notifier = ResourceNotifier()
browser_manager = PlaywrightBrowserManager(resources=resource_store, notifier=notifier)

# 创建 MCP 服务器
app = Server("browser-mcp-server", version="1.0.0")


@app.list_tools()
async def list_tools():
    """列出所有可用的浏览器工具"""
    return create_tools()


@app.call_tool()
async def call_tool(name: str, arguments: dict):
    """处理工具调用"""
    notifier.bind(app.request_context.session)
    result = await handle_tool_call(browser_manager, name, arguments)
    if result.isError:
        # 低层 Server 会把异常转换为 isError=True 的结果
        raise RuntimeError("\n".join(c.text for c in result.content if c.type == "text"))
    return result.content


@app.list_resources()
async def list_resources():
    """列出 console 日志和已保存的截图"""
    return resource_store.list_resources()


@app.read_resource()
async def read_resource(uri: AnyUrl):
    """读取资源内容"""
    return [resource_store.read(str(uri))]


# 创建 SSE 传输
sse_transport = SseServerTransport("/messages/")


async def handle_sse(request):
    """处理 SSE 连接"""
    logger.info(f"收到 SSE 连接请求: {request.method} {request.url}")
    async with sse_transport.connect_sse(
        request.scope, request.receive, request._send
    ) as streams:
        init_options = app.create_initialization_options(
            notification_options=NotificationOptions(resources_changed=True)
        )
        await app.run(streams[0], streams[1], init_options)
    logger.info("MCP 会话已结束")
    return Response()


async def health_check(request):
    """健康检查"""
    status = await browser_manager.browser_status()
    return JSONResponse({
        "status": "ok",
        "service": "browser-mcp-server",
        "browser": status["status"],
    })


@asynccontextmanager
async def lifespan(_app):
    """服务停止时关闭浏览器"""
    yield
    logger.info("正在关闭浏览器...")
    await browser_manager.close()


# 创建 Starlette 应用
starlette_app = Starlette(
    lifespan=lifespan,
    routes=[
        Route("/sse", endpoint=handle_sse, methods=["GET"]),
        Mount("/messages/", app=sse_transport.handle_post_message),
        Route("/health", endpoint=health_check, methods=["GET"]),
    ]
)


def main():
    """启动 SSE 服务器"""
    import uvicorn

    host = DEFAULT_HOST
    port = DEFAULT_PORT
    display_host = host if host != '0.0.0.0' else 'localhost'

    logger.info(f"Browser MCP SSE Server: http://{display_host}:{port}")
    logger.info(f"SSE 端点: http://{display_host}:{port}/sse")
    logger.info(f"消息端点: http://{display_host}:{port}/messages/")

    uvicorn.run(starlette_app, host=host, port=port)


if __name__ == "__main__":
    main()
