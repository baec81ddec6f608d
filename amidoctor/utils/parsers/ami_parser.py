"""
AMI 响应解析器

把 AMI 的原始文本拆成消息块，并判断登录握手的结果
"""
import re
from typing import List, Optional

from ...models.protocol import ProtocolStatus
from .base import AmiMessage

BANNER_PATTERN = re.compile(r"^Asterisk Call Manager/(\S+)", re.MULTILINE)
BLOCK_SEPARATOR_PATTERN = re.compile(r"(?:\r?\n){2,}")
AUTH_FAILED_PATTERN = re.compile(r"authentication failed", re.IGNORECASE)
SUCCESS_PATTERN = re.compile(r"\bsuccess\b", re.IGNORECASE)
RESPONSE_LINE_PATTERN = re.compile(r"^Response:", re.IGNORECASE | re.MULTILINE)


def parse_banner(text: str) -> Optional[str]:
    """
    提取 AMI 欢迎行中的协议版本

    示例输入:
        Asterisk Call Manager/5.0.1

    Returns:
        版本号，如 "5.0.1"；没有欢迎行时返回 None
    """
    match = BANNER_PATTERN.search(text)
    return match.group(1) if match else None


def parse_messages(text: str) -> List[AmiMessage]:
    """
    把 AMI 文本按空行拆分为消息块

    Args:
        text: 原始响应文本（CRLF 或 LF 均可）

    Returns:
        消息列表；欢迎行等非键值行记录在 extra_lines 中

    示例输入:
        Asterisk Call Manager/5.0.1
        Response: Success
        Message: Authentication accepted

        Event: FullyBooted
        Privilege: system,all
    """
    messages = []
    for block in BLOCK_SEPARATOR_PATTERN.split(text):
        if not block.strip():
            continue
        message = AmiMessage()
        for line in block.splitlines():
            key, sep, value = line.partition(":")
            if sep and key.strip() and " " not in key.strip():
                message.fields.setdefault(key.strip().lower(), value.strip())
            elif line.strip():
                message.extra_lines.append(line.strip())
        messages.append(message)
    return messages


def classify_login_response(text: str) -> ProtocolStatus:
    """
    判断登录响应的结果

    Args:
        text: 截止目前收到的全部响应文本

    Returns:
        ProtocolStatus:
            - AUTHENTICATED: 收到 Response: Success
            - AUTH_FAILED: 收到 Authentication failed
            - TIMEOUT: 还没有可以下结论的响应
    """
    for message in parse_messages(text):
        response = (message.response or "").lower()
        if response == "success":
            return ProtocolStatus.AUTHENTICATED
        if response == "error" and AUTH_FAILED_PATTERN.search(message.message or ""):
            return ProtocolStatus.AUTH_FAILED

    # 非标准格式的兜底判断
    if AUTH_FAILED_PATTERN.search(text):
        return ProtocolStatus.AUTH_FAILED
    if SUCCESS_PATTERN.search(text):
        return ProtocolStatus.AUTHENTICATED
    return ProtocolStatus.TIMEOUT


def is_conclusive(text: str) -> bool:
    """
    是否可以停止读取

    Response 所在的块以空行结束即可停止，无论内容能否归类；
    没有 Response 行时，只有兜底匹配到成功或失败才停止
    """
    match = RESPONSE_LINE_PATTERN.search(text)
    if match is not None:
        return BLOCK_SEPARATOR_PATTERN.search(text, match.start()) is not None
    return classify_login_response(text) != ProtocolStatus.TIMEOUT
