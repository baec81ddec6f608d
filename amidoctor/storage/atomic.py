"""
原子写文件

先写入同目录下的临时文件并 fsync，再通过 os.replace 覆盖目标文件，
任何时刻目标文件要么是旧内容，要么是完整的新内容
"""
import os
import tempfile
from pathlib import Path
from typing import Optional, Union


def _fsync_directory(directory: Path) -> None:
    """目录 fsync，部分文件系统不支持时忽略"""
    try:
        fd = os.open(str(directory), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def atomic_write_bytes(
    path: Union[str, Path],
    payload: bytes,
    mode: Optional[int] = None
) -> None:
    """
    原子写入字节内容

    Args:
        path: 目标文件路径
        payload: 待写入的内容
        mode: 文件权限；为 None 时沿用目标文件原有权限（不存在则使用 0o644）

    Raises:
        OSError: 写入或替换失败，此时目标文件保持原样
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    if mode is None:
        mode = target.stat().st_mode & 0o7777 if target.exists() else 0o644

    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, target)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    _fsync_directory(target.parent)
