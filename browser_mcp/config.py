"""
配置常量
"""
import os

# 服务器配置
DEFAULT_HOST = os.getenv("MCP_HOST", "0.0.0.0")
DEFAULT_PORT = int(os.getenv("MCP_PORT", "3334"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# 环境变量名称
LAUNCH_OPTIONS_ENV = "BROWSER_LAUNCH_OPTIONS"
ALLOW_DANGEROUS_ENV = "ALLOW_DANGEROUS"
DOCKER_CONTAINER_ENV = "DOCKER_CONTAINER"

# 会降低浏览器安全隔离的启动参数（前缀匹配）
DANGEROUS_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--single-process",
    "--disable-web-security",
    "--ignore-certificate-errors",
    "--disable-features=IsolateOrigins",
    "--disable-site-isolation-trials",
    "--allow-running-insecure-content",
]

# 需要按命令行参数合并的数组键
FLAG_ARRAY_KEYS = ("args", "ignoreDefaultArgs", "ignore_default_args")

# 基础启动配置
DOCKER_BASE_PROFILE = {
    "headless": True,
    "args": ["--no-sandbox", "--single-process", "--no-zygote"],
}
DESKTOP_BASE_PROFILE = {"headless": False}

# 截图默认尺寸
SCREENSHOT_WIDTH = 800
SCREENSHOT_HEIGHT = 600

# 图片下载
DEFAULT_OUTPUT_FOLDER = "./downloaded_images"
DEFAULT_IMAGE_EXTENSION = ".jpg"
DOWNLOAD_TIMEOUT = 15.0  # 秒
MAX_REDIRECTS = 5
DOWNLOAD_CHUNK_SIZE = 64 * 1024

# 资源 URI
CONSOLE_LOGS_URI = "console://logs"
SCREENSHOT_URI_PREFIX = "screenshot://"


def env_flag(name: str) -> bool:
    """读取布尔型环境变量（仅 "true" 视为开启）"""
    return os.getenv(name, "").strip().lower() == "true"


def allow_dangerous_from_env() -> bool:
    return env_flag(ALLOW_DANGEROUS_ENV)


def running_in_docker() -> bool:
    return env_flag(DOCKER_CONTAINER_ENV)
