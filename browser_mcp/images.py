"""
图片提取与下载

提取：收集 <img> 标签和 CSS 背景图，解析为绝对 URL 并去重。
下载：逐个顺序下载，手动跟随重定向（有跳数上限），单项失败不影响整批。
"""
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlsplit

import httpx
from playwright.async_api import Page

from .config import (
    DEFAULT_IMAGE_EXTENSION,
    DOWNLOAD_CHUNK_SIZE,
    DOWNLOAD_TIMEOUT,
    MAX_REDIRECTS,
)
from .errors import DirectoryCreationFailure, ElementNotFound
from .models import CSS_BACKGROUND, IMG_TAG, DownloadResult, ExtractedImage

logger = logging.getLogger(__name__)

SKIPPED_DATA_URL = "skipped data URL"

_CSS_URL_RE = re.compile(r"""url\(\s*(['"]?)(.*?)\1\s*\)""", re.IGNORECASE)
_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]")
_ABSOLUTE_RE = re.compile(r"^(?:https?:)?//", re.IGNORECASE)

# 返回 null 表示作用域选择器未匹配
_COLLECT_IMAGES_JS = """
({ selector, includeBackgroundImages }) => {
    const root = selector ? document.querySelector(selector) : document.documentElement;
    if (!root) {
        return null;
    }
    const inScope = (tag) => {
        const found = Array.from(root.querySelectorAll(tag));
        return root.matches(tag) ? [root, ...found] : found;
    };
    const images = inScope('img').map((img) => ({
        src: img.getAttribute('src') || '',
        alt: img.getAttribute('alt') || '',
    }));
    const backgrounds = [];
    if (includeBackgroundImages) {
        for (const el of inScope('*')) {
            const value = window.getComputedStyle(el).backgroundImage;
            if (value && value !== 'none') {
                backgrounds.push(value);
            }
        }
    }
    return { images, backgrounds };
}
"""


def css_urls(declaration: str) -> List[str]:
    """提取 background-image 声明中的所有 url(...) 引用"""
    return [match.group(2).strip() for match in _CSS_URL_RE.finditer(declaration or "")]


def normalize_image_url(reference: str, base_url: str) -> str:
    """
    将图片引用解析为绝对 URL

    Raises:
        ValueError: 引用无法解析
    """
    reference = reference.strip()
    if reference.lower().startswith("data:"):
        return reference
    if _ABSOLUTE_RE.match(reference) and not reference.startswith("//"):
        resolved = reference
    else:
        resolved = urljoin(base_url, reference)

    # 非法的 IPv6 主机会在 urlsplit 中抛出 ValueError
    parts = urlsplit(resolved)
    if not parts.scheme:
        raise ValueError(f"cannot resolve {reference!r} against {base_url!r}")
    if parts.scheme in ("http", "https") and not parts.hostname:
        raise ValueError(f"missing host in {resolved!r}")
    return resolved


def image_filename(url: str, index: int, prefix: Optional[str] = None) -> str:
    """根据 URL 生成安全的文件名，index 从 1 开始"""
    try:
        path = urlsplit(url).path
    except ValueError:
        path = ""

    name = _UNSAFE_FILENAME_RE.sub("_", path.rsplit("/", 1)[-1])
    if not name.strip("._"):
        name = f"image_{index}{DEFAULT_IMAGE_EXTENSION}"
    elif not os.path.splitext(name)[1]:
        name += DEFAULT_IMAGE_EXTENSION

    if prefix:
        name = f"{prefix}_{name}"
    return name


class ImagePipeline:
    """图片提取与下载"""

    def __init__(
        self,
        timeout: float = DOWNLOAD_TIMEOUT,
        max_redirects: int = MAX_REDIRECTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.transport = transport
        self.extracted_images: List[ExtractedImage] = []

    async def extract(
        self,
        page: Page,
        selector: Optional[str] = None,
        include_background_images: bool = True,
    ) -> List[ExtractedImage]:
        """
        提取页面图片（每次调用都重新生成结果）

        Args:
            page: 当前页面
            selector: 限定范围的 CSS 选择器
            include_background_images: 是否包含 CSS 背景图

        Returns:
            按出现顺序去重后的图片列表
        """
        self.extracted_images = []

        raw = await page.evaluate(
            _COLLECT_IMAGES_JS,
            {"selector": selector, "includeBackgroundImages": include_background_images},
        )
        if raw is None:
            raise ElementNotFound(selector or "document")

        candidates: List[Dict[str, Any]] = []
        for image in raw.get("images", []):
            if image.get("src"):
                candidates.append({"ref": image["src"], "type": IMG_TAG, "alt": image.get("alt", "")})
        if include_background_images:
            for declaration in raw.get("backgrounds", []):
                for ref in css_urls(declaration):
                    if ref:
                        candidates.append({"ref": ref, "type": CSS_BACKGROUND, "alt": None})

        base_url = page.url
        seen = set()
        for candidate in candidates:
            try:
                url = normalize_image_url(candidate["ref"], base_url)
            except ValueError as e:
                logger.warning(f"跳过无法解析的图片地址: {candidate['ref']}, 错误: {str(e)}")
                continue
            if url in seen:
                continue
            seen.add(url)
            self.extracted_images.append(
                ExtractedImage(url=url, source_type=candidate["type"], alt=candidate["alt"])
            )

        logger.info(f"提取图片完成: {len(self.extracted_images)} 张, 页面: {base_url}")
        return list(self.extracted_images)

    async def download(
        self,
        urls: List[str],
        output_folder: str,
        name_prefix: Optional[str] = None,
    ) -> List[DownloadResult]:
        """
        按输入顺序逐个下载图片

        Raises:
            DirectoryCreationFailure: 输出目录无法创建（整批失败）
        """
        folder = Path(output_folder)
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryCreationFailure(f"Failed to create output folder {output_folder}: {str(e)}") from e

        results: List[DownloadResult] = []
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=False,
            transport=self.transport,
        ) as client:
            for index, url in enumerate(urls, start=1):
                if url.strip().lower().startswith("data:"):
                    results.append(DownloadResult(source_url=url, error=SKIPPED_DATA_URL))
                    continue
                destination = folder / image_filename(url, index, name_prefix)
                results.append(await self._download_one(client, url, destination))

        success_count = sum(1 for r in results if r.success)
        logger.info(f"图片下载完成: {success_count}/{len(results)}, 目录: {folder}")
        return results

    async def _download_one(self, client: httpx.AsyncClient, url: str, destination: Path) -> DownloadResult:
        result = DownloadResult(source_url=url, destination_path=str(destination))
        try:
            result.error = await self._fetch(client, url, destination)
        except httpx.TimeoutException:
            result.error = f"Request timed out after {self.timeout:g}s"
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            result.error = f"Download failed: {str(e) or type(e).__name__}"

        result.success = result.error is None
        if not result.success:
            logger.warning(f"图片下载失败: {url}, 错误: {result.error}")
        return result

    async def _fetch(self, client: httpx.AsyncClient, url: str, destination: Path) -> Optional[str]:
        """下载到 destination，成功返回 None，否则返回错误描述"""
        current = url
        for _ in range(self.max_redirects + 1):
            async with client.stream("GET", current) as response:
                if response.status_code in (301, 302):
                    location = response.headers.get("location")
                    if not location:
                        return f"HTTP {response.status_code} without Location header"
                    current = urljoin(current, location)
                    continue
                if response.status_code != 200:
                    return f"HTTP {response.status_code}"
                await self._save(response, destination)
                return None
        return f"Too many redirects (more than {self.max_redirects})"

    async def _save(self, response: httpx.Response, destination: Path):
        """写入文件，出错时删除不完整的文件"""
        try:
            with open(destination, "wb") as f:
                async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                    f.write(chunk)
        except BaseException:
            destination.unlink(missing_ok=True)
            raise
