"""
manager.conf 结构化解析、编辑与凭据定位
"""
from .document import ConfigDocument, Line, LineKind, parse
from .editor import ConfigEditor
from .ami_defaults import apply_ami_defaults
from .locator import endpoint, is_enabled, is_truthy, locate, locate_user

__all__ = [
    "ConfigDocument",
    "Line",
    "LineKind",
    "parse",
    "ConfigEditor",
    "apply_ami_defaults",
    "endpoint",
    "is_enabled",
    "is_truthy",
    "locate",
    "locate_user",
]
