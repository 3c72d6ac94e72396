"""
DOM 元素分析：结构、Markdown 表示和计算样式
"""
import logging
from typing import Any, Dict

from bs4 import BeautifulSoup
from markdownify import markdownify
from playwright.async_api import Page

from .errors import ElementNotFound
from .models import ElementAnalysis

logger = logging.getLogger(__name__)

# 只返回常用的计算样式，避免结果过大
STYLE_PROPERTIES = [
    "display",
    "position",
    "width",
    "height",
    "margin",
    "padding",
    "color",
    "background-color",
    "background-image",
    "font-family",
    "font-size",
    "font-weight",
    "text-align",
    "border",
    "flex-direction",
    "justify-content",
    "align-items",
    "grid-template-columns",
    "visibility",
    "opacity",
    "z-index",
]

_ANALYZE_JS = """
({ selector, includeStyles, maxDepth, includeSiblings, styleProperties }) => {
    const el = document.querySelector(selector);
    if (!el) {
        return null;
    }
    const describe = (node, depth) => {
        const info = {
            tag: node.tagName.toLowerCase(),
            id: node.id || null,
            classes: Array.from(node.classList),
            attributes: Object.fromEntries(
                Array.from(node.attributes).map((attr) => [attr.name, attr.value])
            ),
            text: Array.from(node.childNodes)
                .filter((child) => child.nodeType === Node.TEXT_NODE)
                .map((child) => child.textContent.trim())
                .filter(Boolean)
                .join(' '),
            children: [],
        };
        if (includeStyles) {
            const computed = window.getComputedStyle(node);
            info.styles = Object.fromEntries(
                styleProperties.map((name) => [name, computed.getPropertyValue(name)])
            );
        }
        if (depth < maxDepth) {
            info.children = Array.from(node.children).map((child) => describe(child, depth + 1));
        } else if (node.children.length) {
            info.truncatedChildren = node.children.length;
        }
        return info;
    };
    const siblings = [];
    if (includeSiblings && el.parentElement) {
        for (const sibling of el.parentElement.children) {
            if (sibling !== el) {
                siblings.push({
                    tag: sibling.tagName.toLowerCase(),
                    id: sibling.id || null,
                    classes: Array.from(sibling.classList),
                    text: (sibling.textContent || '').trim().slice(0, 200),
                });
            }
        }
    }
    return { structure: describe(el, 0), outerHTML: el.outerHTML, siblings };
}
"""


def html_to_markdown(html: str) -> str:
    """HTML 转 Markdown，丢弃 script/style 元素及其内容"""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()
    return markdownify(str(soup)).strip()


async def analyze_element(
    page: Page,
    selector: str,
    include_styles: bool = True,
    max_depth: int = 10,
    include_siblings: bool = False,
) -> ElementAnalysis:
    """
    分析 DOM 元素

    Args:
        page: 当前页面
        selector: CSS 选择器
        include_styles: 是否包含计算样式
        max_depth: 子元素最大递归深度
        include_siblings: 是否包含兄弟元素摘要

    Raises:
        ElementNotFound: 选择器未匹配
    """
    raw: Dict[str, Any] = await page.evaluate(
        _ANALYZE_JS,
        {
            "selector": selector,
            "includeStyles": include_styles,
            "maxDepth": max(0, int(max_depth)),
            "includeSiblings": include_siblings,
            "styleProperties": STYLE_PROPERTIES,
        },
    )
    if raw is None:
        raise ElementNotFound(selector)

    outer_html = raw.get("outerHTML", "")
    markdown = html_to_markdown(outer_html)
    logger.info(f"元素分析完成: {selector}, HTML 长度: {len(outer_html)}")

    return ElementAnalysis(
        selector=selector,
        structure=raw.get("structure", {}),
        outer_html=outer_html,
        markdown=markdown,
        siblings=raw.get("siblings", []),
    )
