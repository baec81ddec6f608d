"""
备份快照模型
"""
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict


@dataclass(frozen=True)
class BackupHandle:
    """
    单个备份快照

    同一个源文件的所有快照中 checksum 互不相同
    """
    source_path: Path
    snapshot_path: Path
    checksum: str
    timestamp: datetime

    @property
    def name(self) -> str:
        return self.snapshot_path.name

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        return {
            "source_path": str(self.source_path),
            "snapshot_path": str(self.snapshot_path),
            "checksum": self.checksum,
            "timestamp": self.timestamp.isoformat()
        }
