"""
Browser MCP Server - 基于 Playwright 的浏览器自动化 MCP 服务

模块结构：
- config: 配置常量与环境变量
- errors: 异常定义
- models: 数据模型
- launch_options: 启动参数合并与安全校验
- browser_manager: 浏览器会话管理与页面操作
- images: 图片提取与下载
- element_analysis: DOM 元素分析
- resources: 控制台日志与截图资源
- tools: MCP 工具定义
"""

from .models import BrowserSession, DownloadResult, ExtractedImage
from .browser_manager import PlaywrightBrowserManager
from .images import ImagePipeline
from .launch_options import merge_launch_options, validate_launch_options
from .resources import ResourceNotifier, ResourceStore
from .tools import create_tools, handle_tool_call
from .config import DEFAULT_PORT, DEFAULT_HOST

__all__ = [
    "BrowserSession",
    "DownloadResult",
    "ExtractedImage",
    "PlaywrightBrowserManager",
    "ImagePipeline",
    "merge_launch_options",
    "validate_launch_options",
    "ResourceNotifier",
    "ResourceStore",
    "create_tools",
    "handle_tool_call",
    "DEFAULT_PORT",
    "DEFAULT_HOST",
]
