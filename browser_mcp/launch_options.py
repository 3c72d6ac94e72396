"""
浏览器启动参数处理

- merge_launch_options: 深度合并两棵启动参数树（args 等数组按命令行标志去重）
- validate_launch_options: 检查合并后的参数是否包含危险标志
- load_env_launch_options: 从环境变量读取默认启动参数
- to_playwright_kwargs: 转换为 chromium.launch() 的关键字参数
"""
import copy
import json
import logging
import os
import re
from typing import Any, Dict, List, Mapping, Optional

from .config import (
    DANGEROUS_ARGS,
    FLAG_ARRAY_KEYS,
    LAUNCH_OPTIONS_ENV,
    allow_dangerous_from_env,
)
from .errors import SecurityPolicyViolation
from .models import LaunchOptions

logger = logging.getLogger(__name__)

# chromium.launch() 支持的关键字参数
PLAYWRIGHT_LAUNCH_KEYS = {
    "executable_path",
    "channel",
    "args",
    "ignore_default_args",
    "handle_sigint",
    "handle_sigterm",
    "handle_sighup",
    "timeout",
    "env",
    "headless",
    "devtools",
    "proxy",
    "downloads_path",
    "slow_mo",
    "traces_dir",
    "chromium_sandbox",
    "firefox_user_prefs",
}

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _flag_name(arg: Any) -> Optional[str]:
    """--flag=value -> --flag；非命令行标志返回 None"""
    if isinstance(arg, str) and arg.startswith("--"):
        return arg.split("=", 1)[0]
    return None


def _unique(items: List[Any]) -> List[Any]:
    result: List[Any] = []
    for item in items:
        if item not in result:
            result.append(item)
    return result


def _merge_arrays(key: str, base: List[Any], overlay: List[Any]) -> List[Any]:
    if key in FLAG_ARRAY_KEYS:
        overridden = {name for name in map(_flag_name, overlay) if name}
        base = [arg for arg in base if _flag_name(arg) not in overridden]
    return _unique(list(base) + list(overlay))


def merge_launch_options(base: Any, overlay: Any) -> Any:
    """
    深度合并启动参数，overlay 优先

    Args:
        base: 基础配置
        overlay: 覆盖配置

    Returns:
        新的配置树（不修改输入）
    """
    if not isinstance(base, Mapping) or not isinstance(overlay, Mapping):
        return copy.deepcopy(overlay)

    merged: Dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, list) and isinstance(value, list):
            merged[key] = _merge_arrays(key, current, copy.deepcopy(value))
        elif isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_launch_options(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def find_dangerous_args(options: Mapping[str, Any]) -> List[str]:
    """返回 args 中命中危险标志前缀的参数"""
    args = options.get("args") if isinstance(options, Mapping) else None
    if not isinstance(args, list):
        return []
    return [
        arg for arg in args
        if isinstance(arg, str) and any(arg.startswith(flag) for flag in DANGEROUS_ARGS)
    ]


def validate_launch_options(options: Mapping[str, Any], allow_dangerous: bool = False) -> None:
    """
    校验合并后的启动参数

    必须在完整合并后的配置上调用：危险标志也可能来自环境变量默认值。

    Raises:
        SecurityPolicyViolation: 存在危险参数且调用方和环境都未允许
    """
    dangerous = find_dangerous_args(options)
    if not dangerous:
        return
    if allow_dangerous or allow_dangerous_from_env():
        logger.warning(f"已允许危险启动参数: {', '.join(dangerous)}")
        return
    raise SecurityPolicyViolation(dangerous)


def load_env_launch_options() -> LaunchOptions:
    """读取环境变量中的默认启动参数，解析失败时返回空配置"""
    raw = os.getenv(LAUNCH_OPTIONS_ENV, "").strip()
    if not raw:
        return {}
    try:
        options = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"{LAUNCH_OPTIONS_ENV} 解析失败，使用空配置: {str(e)}")
        return {}
    if not isinstance(options, dict):
        logger.warning(f"{LAUNCH_OPTIONS_ENV} 不是 JSON 对象，使用空配置")
        return {}
    return options


def to_playwright_kwargs(options: Mapping[str, Any]) -> Dict[str, Any]:
    """将驼峰命名的启动参数转换为 Playwright 关键字参数，丢弃不支持的键"""
    kwargs: Dict[str, Any] = {}
    for key, value in options.items():
        name = _CAMEL_RE.sub("_", key).lower()
        if name not in PLAYWRIGHT_LAUNCH_KEYS:
            logger.warning(f"忽略不支持的启动参数: {key}")
            continue
        kwargs[name] = value
    return kwargs
