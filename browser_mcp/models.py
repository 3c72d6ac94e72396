"""
数据模型定义
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from playwright.async_api import Browser, Page, Playwright

LaunchOptions = Dict[str, Any]

IMG_TAG = "img_tag"
CSS_BACKGROUND = "css_background"


@dataclass
class BrowserSession:
    """浏览器会话状态（进程内唯一）"""
    playwright: Optional[Playwright] = None
    browser: Optional[Browser] = None
    page: Optional[Page] = None
    # 创建当前浏览器时调用方传入的启动参数（不含环境默认值）
    last_launch_options: Optional[LaunchOptions] = None

    def reset(self):
        self.browser = None
        self.page = None


@dataclass
class ExtractedImage:
    """页面中提取到的图片"""
    url: str
    source_type: str
    alt: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DownloadResult:
    """单个图片的下载结果"""
    source_url: str
    destination_path: Optional[str] = None
    success: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ElementAnalysis:
    """DOM 元素分析结果"""
    selector: str
    structure: Dict[str, Any]
    outer_html: str
    markdown: str
    siblings: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
