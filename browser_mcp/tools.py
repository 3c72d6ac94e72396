"""
MCP 工具定义和调用处理
"""
import base64
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List

from mcp import types

from .config import DEFAULT_OUTPUT_FOLDER, SCREENSHOT_HEIGHT, SCREENSHOT_WIDTH
from .errors import BrowserToolError

logger = logging.getLogger(__name__)


def create_tools() -> List[types.Tool]:
    """创建并返回所有可用的浏览器工具列表"""
    return [
        types.Tool(
            name="browser_navigate",
            description="Navigate to a URL",
            inputSchema={
                "type": "object",
                "properties": {
                    "url": {"type": "string", "description": "URL to navigate to"},
                    "launchOptions": {
                        "type": "object",
                        "description": "Browser launch options. If changed and not empty, the browser restarts. "
                                       "Example: { \"headless\": true, \"args\": [\"--window-size=1280,720\"] }",
                    },
                    "allowDangerous": {
                        "type": "boolean",
                        "description": "Allow launch options that reduce security (e.g. --no-sandbox). Default false.",
                        "default": False,
                    },
                },
                "required": ["url"],
            },
        ),
        types.Tool(
            name="browser_screenshot",
            description="Take a screenshot of the current page or a specific element",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Name for the screenshot"},
                    "selector": {"type": "string", "description": "CSS selector for element to screenshot"},
                    "width": {"type": "number", "description": f"Width in pixels (default: {SCREENSHOT_WIDTH})"},
                    "height": {"type": "number", "description": f"Height in pixels (default: {SCREENSHOT_HEIGHT})"},
                },
                "required": ["name"],
            },
        ),
        types.Tool(
            name="browser_click",
            description="Click an element on the page",
            inputSchema={
                "type": "object",
                "properties": {
                    "selector": {"type": "string", "description": "CSS selector for element to click"},
                },
                "required": ["selector"],
            },
        ),
        types.Tool(
            name="browser_fill",
            description="Fill out an input field",
            inputSchema={
                "type": "object",
                "properties": {
                    "selector": {"type": "string", "description": "CSS selector for input field"},
                    "value": {"type": "string", "description": "Value to fill"},
                },
                "required": ["selector", "value"],
            },
        ),
        types.Tool(
            name="browser_select",
            description="Select an option in a <select> element",
            inputSchema={
                "type": "object",
                "properties": {
                    "selector": {"type": "string", "description": "CSS selector for the select element"},
                    "value": {"type": "string", "description": "Value to select"},
                },
                "required": ["selector", "value"],
            },
        ),
        types.Tool(
            name="browser_hover",
            description="Hover an element on the page",
            inputSchema={
                "type": "object",
                "properties": {
                    "selector": {"type": "string", "description": "CSS selector for element to hover"},
                },
                "required": ["selector"],
            },
        ),
        types.Tool(
            name="browser_evaluate",
            description="Execute JavaScript in the page and return the result and console output",
            inputSchema={
                "type": "object",
                "properties": {
                    "script": {"type": "string", "description": "JavaScript code to execute"},
                },
                "required": ["script"],
            },
        ),
        types.Tool(
            name="browser_extract_images",
            description="Extract all images from the page (both <img> tags and CSS background images)",
            inputSchema={
                "type": "object",
                "properties": {
                    "selector": {
                        "type": "string",
                        "description": "Optional CSS selector to limit image extraction to a part of the page",
                    },
                    "includeBackgroundImages": {
                        "type": "boolean",
                        "description": "Whether to include CSS background images (default: true)",
                        "default": True,
                    },
                },
            },
        ),
        types.Tool(
            name="browser_download_images",
            description="Download images to a specified folder",
            inputSchema={
                "type": "object",
                "properties": {
                    "imageUrls": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Image URLs to download",
                    },
                    "outputFolder": {
                        "type": "string",
                        "description": f"Folder where images are saved (default: {DEFAULT_OUTPUT_FOLDER})",
                    },
                    "namePrefix": {"type": "string", "description": "Optional prefix for downloaded filenames"},
                },
                "required": ["imageUrls"],
            },
        ),
        types.Tool(
            name="browser_analyze_element",
            description="Analyze a DOM element: HTML structure, Markdown representation and computed styles",
            inputSchema={
                "type": "object",
                "properties": {
                    "selector": {"type": "string", "description": "CSS selector for the element to analyze"},
                    "includeStyles": {
                        "type": "boolean",
                        "description": "Whether to include computed styles (default: true)",
                        "default": True,
                    },
                    "maxDepth": {
                        "type": "number",
                        "description": "Maximum depth for nested elements (default: 10)",
                        "default": 10,
                    },
                    "includeSiblings": {
                        "type": "boolean",
                        "description": "Whether to include siblings of the selected element (default: false)",
                        "default": False,
                    },
                },
                "required": ["selector"],
            },
        ),
        types.Tool(
            name="browser_status",
            description="Check browser status, list open tabs, switch tabs or open a new tab",
            inputSchema={
                "type": "object",
                "properties": {
                    "action": {
                        "type": "string",
                        "enum": ["status", "list_tabs", "switch_tab", "new_tab"],
                        "description": "status | list_tabs | switch_tab | new_tab",
                    },
                    "tabIndex": {"type": "number", "description": "Tab index (switch_tab only)"},
                    "url": {"type": "string", "description": "URL to open (new_tab only)"},
                },
                "required": ["action"],
            },
        ),
    ]


def _text(text: str, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        isError=is_error,
    )


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


async def _navigate(manager, args: Dict[str, Any]) -> types.CallToolResult:
    result = await manager.browser_navigate(
        args["url"],
        launch_options=args.get("launchOptions"),
        allow_dangerous=bool(args.get("allowDangerous", False)),
    )
    return _text(f"Navigated to {result['url']}")


async def _screenshot(manager, args: Dict[str, Any]) -> types.CallToolResult:
    name = args["name"]
    width = args.get("width", SCREENSHOT_WIDTH)
    height = args.get("height", SCREENSHOT_HEIGHT)
    data = await manager.browser_screenshot(name, args.get("selector"), width, height)
    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text=f"Screenshot '{name}' taken at {int(width)}x{int(height)}"),
            types.ImageContent(type="image", data=base64.b64encode(data).decode("ascii"), mimeType="image/png"),
        ],
        isError=False,
    )


async def _click(manager, args: Dict[str, Any]) -> types.CallToolResult:
    await manager.browser_click(args["selector"])
    return _text(f"Clicked: {args['selector']}")


async def _fill(manager, args: Dict[str, Any]) -> types.CallToolResult:
    await manager.browser_fill(args["selector"], args["value"])
    return _text(f"Filled {args['selector']} with: {args['value']}")


async def _select(manager, args: Dict[str, Any]) -> types.CallToolResult:
    await manager.browser_select(args["selector"], args["value"])
    return _text(f"Selected {args['selector']} with: {args['value']}")


async def _hover(manager, args: Dict[str, Any]) -> types.CallToolResult:
    await manager.browser_hover(args["selector"])
    return _text(f"Hovered {args['selector']}")


async def _evaluate(manager, args: Dict[str, Any]) -> types.CallToolResult:
    result, output = await manager.browser_evaluate(args["script"])
    console = "\n".join(output) if output else "(no console output)"
    return _text(f"Execution result:\n{_dumps(result)}\n\nConsole output:\n{console}")


async def _extract_images(manager, args: Dict[str, Any]) -> types.CallToolResult:
    images = await manager.browser_extract_images(
        args.get("selector"),
        bool(args.get("includeBackgroundImages", True)),
    )
    if not images:
        return _text("No images found on the page")

    lines = [f"Found {len(images)} images:"]
    for index, image in enumerate(images, start=1):
        line = f"{index}. [{image.source_type}] {image.url}"
        if image.alt:
            line += f" (alt: {image.alt})"
        lines.append(line)
    return _text("\n".join(lines))


async def _download_images(manager, args: Dict[str, Any]) -> types.CallToolResult:
    urls = args["imageUrls"]
    folder = args.get("outputFolder") or DEFAULT_OUTPUT_FOLDER
    results = await manager.browser_download_images(urls, folder, args.get("namePrefix"))

    success_count = sum(1 for r in results if r.success)
    lines = [f"Downloaded {success_count} of {len(results)} images to {folder}"]
    for r in results:
        if r.success:
            lines.append(f"✓ {r.source_url} -> {r.destination_path}")
        else:
            lines.append(f"✗ {r.source_url}: {r.error}")
    return _text("\n".join(lines))


async def _analyze_element(manager, args: Dict[str, Any]) -> types.CallToolResult:
    analysis = await manager.browser_analyze_element(
        args["selector"],
        include_styles=bool(args.get("includeStyles", True)),
        max_depth=int(args.get("maxDepth", 10)),
        include_siblings=bool(args.get("includeSiblings", False)),
    )
    payload = {"selector": analysis.selector, "structure": analysis.structure}
    if analysis.siblings:
        payload["siblings"] = analysis.siblings
    return _text(
        f"Element analysis:\n{_dumps(payload)}\n\n"
        f"Markdown:\n{analysis.markdown}\n\n"
        f"HTML:\n{analysis.outer_html}"
    )


async def _status(manager, args: Dict[str, Any]) -> types.CallToolResult:
    action = args.get("action", "status")
    if action == "status":
        result = await manager.browser_status()
    elif action == "list_tabs":
        result = await manager.browser_list_tabs()
    elif action == "switch_tab":
        if args.get("tabIndex") is None:
            return _text("tabIndex is required for switch_tab", is_error=True)
        result = await manager.browser_switch_tab(int(args["tabIndex"]))
    elif action == "new_tab":
        result = await manager.browser_new_tab(args.get("url"))
    else:
        return _text(f"Unknown action: {action}", is_error=True)
    return _text(_dumps(result))


TOOL_HANDLERS: Dict[str, Callable[[Any, Dict[str, Any]], Awaitable[types.CallToolResult]]] = {
    "browser_navigate": _navigate,
    "browser_screenshot": _screenshot,
    "browser_click": _click,
    "browser_fill": _fill,
    "browser_select": _select,
    "browser_hover": _hover,
    "browser_evaluate": _evaluate,
    "browser_extract_images": _extract_images,
    "browser_download_images": _download_images,
    "browser_analyze_element": _analyze_element,
    "browser_status": _status,
}


async def handle_tool_call(browser_manager, name: str, arguments: Dict[str, Any]) -> types.CallToolResult:
    """处理工具调用，所有异常都转换为 isError 结果"""
    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        return _text(f"Unknown tool: {name}", is_error=True)

    try:
        return await handler(browser_manager, arguments or {})
    except BrowserToolError as e:
        logger.warning(f"工具调用失败: {name}, 错误: {str(e)}")
        return _text(str(e), is_error=True)
    except Exception as e:
        logger.error(f"工具调用异常: {name}, 错误: {str(e)}", exc_info=True)
        return _text(f"Tool {name} failed: {str(e)}", is_error=True)
