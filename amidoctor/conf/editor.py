"""
manager.conf 读写

所有对 manager.conf 的修改都经过 ConfigEditor.save：
内容无变化时不写盘，有变化时先备份再原子写入
"""
import logging
from pathlib import Path
from typing import Optional, Union

from ..errors import ConfigNotFoundError
from ..models.backup import BackupHandle
from ..storage.atomic import atomic_write_bytes
from ..storage.backup_store import BackupStore
from ..storage.run_lock import RunLock, lock_path_for
from .document import ConfigDocument

logger = logging.getLogger(__name__)

DEFAULT_MANAGER_CONF = "/etc/asterisk/manager.conf"


class ConfigEditor:
    """
    单个配置文件的编辑器

    Args:
        path: 配置文件路径
        backup_store: 写入前用于备份
    """

    def __init__(self, path: Union[str, Path], backup_store: BackupStore):
        self.path = Path(path)
        self.backup_store = backup_store

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> ConfigDocument:
        """
        读取并解析配置文件

        Raises:
            ConfigNotFoundError: 文件不存在
        """
        if not self.exists():
            raise ConfigNotFoundError("找不到 manager.conf", detail=str(self.path))
        return ConfigDocument.parse(self.path.read_bytes())

    def save(self, doc: ConfigDocument) -> Optional[BackupHandle]:
        """
        保存文档

        Returns:
            写入前的备份快照；内容无变化（未写盘）时返回 None

        Raises:
            BackupFailedError: 备份失败，此时不会写入
        """
        payload = doc.serialize()
        if self.exists() and self.path.read_bytes() == payload:
            logger.debug("配置无变化，跳过写入: %s", self.path)
            return None

        handle = self.backup_store.backup(self.path) if self.exists() else None
        atomic_write_bytes(self.path, payload)
        logger.info("已写入配置文件: %s", self.path)
        return handle

    def lock(self) -> RunLock:
        """返回该配置文件的运行锁（未获取），配合 with 使用"""
        return RunLock(lock_path_for(self.path))
