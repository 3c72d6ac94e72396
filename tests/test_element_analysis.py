"""
DOM 元素分析测试
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from browser_mcp.element_analysis import STYLE_PROPERTIES, analyze_element, html_to_markdown
from browser_mcp.errors import ElementNotFound


@pytest.mark.asyncio
async def test_markdown_and_structure():
    page = MagicMock()
    page.evaluate = AsyncMock(return_value={
        "structure": {"tag": "article", "children": [{"tag": "h1", "children": []}]},
        "outerHTML": "<article><h1>Title</h1><p>Hello <b>world</b></p></article>",
        "siblings": [],
    })

    analysis = await analyze_element(page, "article", max_depth=3)

    payload = page.evaluate.await_args.args[1]
    assert payload["selector"] == "article"
    assert payload["maxDepth"] == 3
    assert payload["styleProperties"] == STYLE_PROPERTIES
    assert analysis.structure["tag"] == "article"
    assert "Title" in analysis.markdown
    assert "**world**" in analysis.markdown


@pytest.mark.asyncio
async def test_missing_element():
    page = MagicMock()
    page.evaluate = AsyncMock(return_value=None)

    with pytest.raises(ElementNotFound):
        await analyze_element(page, "#ghost")


def test_script_and_style_bodies_are_dropped():
    html = (
        "<div><style>.x { color: red; }</style><p>Visible</p>"
        "<script>window.secret = 1;</script></div>"
    )

    markdown = html_to_markdown(html)

    assert "Visible" in markdown
    assert "color" not in markdown
    assert "secret" not in markdown
