"""
manager.conf 的 AMI 默认配置

修复和 configure 共用：打开 AMI、设置监听地址和端口、写入用户 secret，
并把键按固定顺序排列（deny 必须在 permit 之前）
"""
from ..models.credential import DEFAULT_AMI_HOST, DEFAULT_AMI_PORT
from .document import ConfigDocument
from .locator import GENERAL_SECTION

GENERAL_KEY_ORDER = ["enabled", "port", "bindaddr"]
USER_KEY_ORDER = ["secret", "deny", "permit", "read", "write"]

DEFAULT_DENY = "0.0.0.0/0.0.0.0"
DEFAULT_PERMIT = "127.0.0.1/255.255.255.255"
DEFAULT_PRIVILEGES = "all"


def apply_ami_defaults(
    doc: ConfigDocument,
    username: str,
    secret: str,
    port: int = DEFAULT_AMI_PORT,
    bindaddr: str = DEFAULT_AMI_HOST,
    general_section: str = GENERAL_SECTION
) -> bool:
    """
    把 AMI 相关配置修正为可用状态

    - [general]: enabled=yes、port、bindaddr
    - [username]: secret 总是写入；已有的 deny/permit/read/write 保持不变，
      都没有时才补上只允许本机访问的默认 ACL 和 read/write=all

    Args:
        doc: manager.conf 文档（就地修改）
        username: AMI 用户名（节名）
        secret: 要写入的 secret

    Returns:
        文档是否发生变化
    """
    changed = False
    changed |= doc.set_value(general_section, "enabled", "yes")
    changed |= doc.set_value(general_section, "port", str(port))
    changed |= doc.set_value(general_section, "bindaddr", bindaddr)

    # 先查 ACL，set_value 可能会新建节
    has_acl = (
        doc.get_value(username, "deny") is not None
        or doc.get_value(username, "permit") is not None
    )
    changed |= doc.set_value(username, "secret", secret)
    if not has_acl:
        changed |= doc.set_value(username, "deny", DEFAULT_DENY)
        changed |= doc.set_value(username, "permit", DEFAULT_PERMIT)
    for key in ("read", "write"):
        if doc.get_value(username, key) is None:
            changed |= doc.set_value(username, key, DEFAULT_PRIVILEGES)

    changed |= doc.normalize_order(general_section, GENERAL_KEY_ORDER)
    changed |= doc.normalize_order(username, USER_KEY_ORDER)
    return changed
