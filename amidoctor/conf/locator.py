"""
AMI 凭据定位

从 manager.conf 中找出 AMI 用户及其 secret，以及 [general] 中的监听地址和端口
"""
import logging
from typing import Optional, Tuple

from ..errors import SecretNotFoundError
from ..models.credential import DEFAULT_AMI_HOST, DEFAULT_AMI_PORT, Credential
from .document import ConfigDocument

logger = logging.getLogger(__name__)

GENERAL_SECTION = "general"
WILDCARD_ADDRESSES = {"", "0.0.0.0", "::", "[::]", "*"}
TRUTHY_VALUES = {"yes", "true", "y", "t", "1", "on"}


def is_truthy(value: Optional[str]) -> bool:
    """按 Asterisk 的 ast_true 规则判断布尔值"""
    return value is not None and value.strip().lower() in TRUTHY_VALUES


def is_enabled(doc: ConfigDocument) -> bool:
    """[general] enabled 是否为真"""
    return is_truthy(doc.get_value(GENERAL_SECTION, "enabled"))


def endpoint(doc: ConfigDocument, reserved_section: str = GENERAL_SECTION) -> Tuple[str, int]:
    """
    解析 AMI 监听端点

    bindaddr 为空或通配地址时连接本机

    Returns:
        (host, port)
    """
    bindaddr = (doc.get_value(reserved_section, "bindaddr") or "").strip()
    host = DEFAULT_AMI_HOST if bindaddr in WILDCARD_ADDRESSES else bindaddr

    port = DEFAULT_AMI_PORT
    raw_port = doc.get_value(reserved_section, "port")
    if raw_port:
        try:
            port = int(raw_port.strip())
        except ValueError:
            logger.warning("manager.conf 中的端口无效: %r，使用默认端口 %d", raw_port, DEFAULT_AMI_PORT)
        if not 0 < port < 65536:
            logger.warning("manager.conf 中的端口超出范围: %d，使用默认端口 %d", port, DEFAULT_AMI_PORT)
            port = DEFAULT_AMI_PORT
    return host, port


def _secret_of(doc: ConfigDocument, section: str) -> Optional[str]:
    value = doc.get_value(section, "secret")
    if value is None:
        return None
    return value.strip() or None


def locate(doc: ConfigDocument, reserved_section: str = GENERAL_SECTION) -> Credential:
    """
    定位第一个带有 secret 的 AMI 用户

    按文档顺序遍历除保留节以外的所有节，节名即用户名

    Args:
        doc: manager.conf 文档
        reserved_section: 不代表用户的保留节

    Returns:
        Credential

    Raises:
        SecretNotFoundError: 没有任何节包含生效的 secret
    """
    host, port = endpoint(doc, reserved_section)
    for section in doc.section_names():
        if section == reserved_section:
            continue
        secret = _secret_of(doc, section)
        if secret:
            logger.debug("在 [%s] 中找到 AMI secret", section)
            return Credential(username=section, secret=secret, host=host, port=port)
    raise SecretNotFoundError("manager.conf 中没有找到 AMI 用户的 secret")


def locate_user(doc: ConfigDocument, username: str, reserved_section: str = GENERAL_SECTION) -> Credential:
    """
    读取指定用户的凭据

    Raises:
        SecretNotFoundError: 该用户不存在或没有 secret
    """
    secret = _secret_of(doc, username) if username != reserved_section else None
    if not secret:
        raise SecretNotFoundError(f"用户 [{username}] 没有配置 secret")
    host, port = endpoint(doc, reserved_section)
    return Credential(username=username, secret=secret, host=host, port=port)
