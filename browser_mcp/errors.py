"""
异常定义

所有工具层可以识别并转换为 isError 结果的异常都继承自 BrowserToolError。
"""
from typing import List


class BrowserToolError(Exception):
    """浏览器工具异常基类"""


class SecurityPolicyViolation(BrowserToolError):
    """启动参数包含危险标志且未允许"""

    def __init__(self, dangerous_args: List[str]):
        self.dangerous_args = list(dangerous_args)
        super().__init__(
            "Dangerous browser arguments detected: "
            f"{', '.join(self.dangerous_args)}. "
            "Set allowDangerous: true in the tool call arguments "
            "or ALLOW_DANGEROUS=true in the environment to override."
        )


class SessionLaunchFailure(BrowserToolError):
    """浏览器启动失败"""


class ElementNotFound(BrowserToolError):
    """选择器未匹配到任何元素"""

    def __init__(self, selector: str):
        self.selector = selector
        super().__init__(f"Element not found: {selector}")


class InteractionFailure(BrowserToolError):
    """页面交互（点击、输入、选择、悬停）失败"""


class ScriptExecutionFailure(BrowserToolError):
    """页面脚本执行失败"""


class DirectoryCreationFailure(BrowserToolError):
    """下载目录无法创建"""
