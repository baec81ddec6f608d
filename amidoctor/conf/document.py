"""
结构化配置文档

把 Asterisk 风格的分节配置文件（manager.conf 等）解析为可编辑的行节点列表，
并能原样序列化回去：未修改的文档序列化后与原始字节完全一致。

节的范围不是通过文本匹配"从这个标题到下一个标题"得到的，而是在扁平的
行列表上按索引区间计算：节从 SectionHeader 开始，到下一个 SectionHeader
或文档结尾为止。

同名节出现多次时，以第一次出现的节作为读写范围。
"""
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union


class LineKind(str, Enum):
    """行节点类型"""
    BLANK = "blank"
    COMMENT = "comment"
    SECTION = "section"
    KEY_VALUE = "key_value"


LINE_BREAK_PATTERN = re.compile(r"\r\n|\n|\r")
SECTION_PATTERN = re.compile(r"^\s*\[([^\]]+)\]\s*(?:\([^)]*\))?\s*(?:[;#].*)?$")
KEY_VALUE_PATTERN = re.compile(r"^(\s*)([A-Za-z0-9_.\-]+)(\s*=>?\s*)(.*)$")
COMMENTED_KEY_VALUE_PATTERN = re.compile(r"^(\s*)([;#]+\s*)([A-Za-z0-9_.\-]+)(\s*=>?\s*)(.*)$")
# 行内注释：未转义的 ";"，或前面有空白的 "#"
INLINE_COMMENT_PATTERN = re.compile(r"(?<!\\);|\s#")

BLOCK_COMMENT_START = ";--"
BLOCK_COMMENT_END = "--;"

DEFAULT_COMMENT_MARKER = "; "
DEFAULT_SEPARATOR = " = "


def _split_value(rest: str) -> Tuple[str, str]:
    """把 "value   ; comment" 拆成值和尾部（空白 + 行内注释）"""
    match = INLINE_COMMENT_PATTERN.search(rest)
    body = rest[:match.start()] if match else rest
    comment = rest[match.start():] if match else ""
    value = body.rstrip()
    return value, body[len(value):] + comment


@dataclass(frozen=True)
class Line:
    """
    单行节点

    raw 保存该行原始内容（不含换行符），eol 保存原始换行符，
    文件末尾没有换行时 eol 为空字符串
    """
    kind: LineKind
    raw: str
    eol: str = "\n"
    name: Optional[str] = None          # 节名（SECTION）
    key: Optional[str] = None           # 键名（KEY_VALUE）
    value: Optional[str] = None         # 值（不含行内注释）
    trailing: str = ""                  # 值后面的空白和行内注释
    commented_out: bool = False         # 是否为被注释掉的键值对
    indent: str = ""
    marker: str = ""                    # 注释前缀，如 "; "
    separator: str = DEFAULT_SEPARATOR

    @property
    def trailing_comment(self) -> str:
        return self.trailing.strip()

    @property
    def is_active_key(self) -> bool:
        return self.kind == LineKind.KEY_VALUE and not self.commented_out

    def matches(self, key: str) -> bool:
        """键名比较不区分大小写"""
        return self.kind == LineKind.KEY_VALUE and self.key.lower() == key.lower()

    def render(self) -> str:
        return self.raw + self.eol

    def _recompose(self, **changes) -> "Line":
        line = replace(self, **changes)
        marker = line.marker if line.commented_out else ""
        raw = f"{line.indent}{marker}{line.key}{line.separator}{line.value}{line.trailing}"
        return replace(line, raw=raw)

    def with_value(self, value: str) -> "Line":
        if self.value == value:
            return self
        return self._recompose(value=value)

    def uncommented(self) -> "Line":
        if not self.commented_out:
            return self
        return self._recompose(commented_out=False, marker="")

    def commented(self, marker: str = DEFAULT_COMMENT_MARKER) -> "Line":
        if self.commented_out:
            return self
        return self._recompose(commented_out=True, marker=marker)

    def terminated(self, eol: str) -> "Line":
        """确保该行带有换行符"""
        if self.eol:
            return self
        return replace(self, eol=eol)

    @classmethod
    def blank(cls, eol: str = "\n") -> "Line":
        return cls(kind=LineKind.BLANK, raw="", eol=eol)

    @classmethod
    def section(cls, name: str, eol: str = "\n") -> "Line":
        return cls(kind=LineKind.SECTION, raw=f"[{name}]", eol=eol, name=name)

    @classmethod
    def key_value(cls, key: str, value: str, eol: str = "\n") -> "Line":
        return cls(
            kind=LineKind.KEY_VALUE,
            raw=f"{key}{DEFAULT_SEPARATOR}{value}",
            eol=eol,
            key=key,
            value=value
        )


@dataclass(frozen=True)
class SectionSpan:
    """节在行列表中的索引区间：header 为标题行索引，[header+1, end) 为节内容"""
    name: str
    header: int
    end: int

    @property
    def body(self) -> range:
        return range(self.header + 1, self.end)


def _classify(content: str, eol: str) -> Line:
    """识别单行内容，无法识别的行原样保留为注释"""
    stripped = content.strip()
    if not stripped:
        return Line(kind=LineKind.BLANK, raw=content, eol=eol)

    section_match = SECTION_PATTERN.match(content)
    if section_match:
        return Line(kind=LineKind.SECTION, raw=content, eol=eol, name=section_match.group(1).strip())

    commented_match = COMMENTED_KEY_VALUE_PATTERN.match(content)
    if commented_match:
        indent, marker, key, separator, rest = commented_match.groups()
        value, trailing = _split_value(rest)
        return Line(
            kind=LineKind.KEY_VALUE, raw=content, eol=eol, key=key, value=value,
            trailing=trailing, commented_out=True, indent=indent, marker=marker,
            separator=separator
        )

    if stripped.startswith((";", "#")):
        return Line(kind=LineKind.COMMENT, raw=content, eol=eol)

    kv_match = KEY_VALUE_PATTERN.match(content)
    if kv_match:
        indent, key, separator, rest = kv_match.groups()
        value, trailing = _split_value(rest)
        return Line(
            kind=LineKind.KEY_VALUE, raw=content, eol=eol, key=key, value=value,
            trailing=trailing, indent=indent, separator=separator
        )

    return Line(kind=LineKind.COMMENT, raw=content, eol=eol)


def _split_lines(text: str) -> Iterator[Tuple[str, str]]:
    pos = 0
    while pos < len(text):
        match = LINE_BREAK_PATTERN.search(text, pos)
        if match is None:
            yield text[pos:], ""
            return
        yield text[pos:match.start()], match.group(0)
        pos = match.end()


class ConfigDocument:
    """
    可编辑的配置文档

    所有修改操作都返回 bool 表示文档是否真正发生了变化，
    以便调用方在无变化时跳过备份和写盘
    """

    def __init__(self, lines: Optional[Sequence[Line]] = None):
        self.lines: List[Line] = list(lines or [])

    @classmethod
    def parse(cls, data: Union[bytes, str]) -> "ConfigDocument":
        """
        解析配置内容，任何输入都不会抛出异常

        Args:
            data: 原始字节或字符串；非 UTF-8 字节通过 surrogateescape 保留

        Returns:
            ConfigDocument
        """
        if isinstance(data, bytes):
            text = data.decode("utf-8", errors="surrogateescape")
        else:
            text = data

        lines: List[Line] = []
        in_block_comment = False
        for content, eol in _split_lines(text):
            stripped = content.strip()
            if in_block_comment:
                lines.append(Line(kind=LineKind.COMMENT, raw=content, eol=eol))
                in_block_comment = BLOCK_COMMENT_END not in content
                continue
            if stripped.startswith(BLOCK_COMMENT_START):
                lines.append(Line(kind=LineKind.COMMENT, raw=content, eol=eol))
                in_block_comment = BLOCK_COMMENT_END not in stripped[len(BLOCK_COMMENT_START):]
                continue
            lines.append(_classify(content, eol))
        return cls(lines)

    def serialize(self) -> bytes:
        return self.to_text().encode("utf-8", errors="surrogateescape")

    def to_text(self) -> str:
        return "".join(line.render() for line in self.lines)

    def copy(self) -> "ConfigDocument":
        return ConfigDocument(self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    def __repr__(self) -> str:
        return f"ConfigDocument(lines={len(self.lines)}, sections={self.section_names()})"

    # ------------------------------------------------------------------
    # 节范围
    # ------------------------------------------------------------------

    def spans(self) -> List[SectionSpan]:
        """按文档顺序返回所有节（包括重复的同名节）"""
        headers = [i for i, line in enumerate(self.lines) if line.kind == LineKind.SECTION]
        spans = []
        for pos, header in enumerate(headers):
            end = headers[pos + 1] if pos + 1 < len(headers) else len(self.lines)
            spans.append(SectionSpan(name=self.lines[header].name, header=header, end=end))
        return spans

    def scope(self, section: str) -> Optional[SectionSpan]:
        """返回节的读写范围（同名节取第一次出现）"""
        for span in self.spans():
            if span.name == section:
                return span
        return None

    def section_names(self) -> List[str]:
        """去重后的节名，保持首次出现顺序"""
        names: List[str] = []
        for span in self.spans():
            if span.name not in names:
                names.append(span.name)
        return names

    def has_section(self, section: str) -> bool:
        return self.scope(section) is not None

    def items(self, section: str) -> List[Tuple[str, str]]:
        """节内所有生效的键值对（按出现顺序）"""
        span = self.scope(section)
        if span is None:
            return []
        return [
            (self.lines[i].key, self.lines[i].value)
            for i in span.body
            if self.lines[i].is_active_key
        ]

    def as_dict(self) -> Dict[str, Dict[str, str]]:
        """节 -> {键: 值}，每个键取第一次出现的值"""
        out: Dict[str, Dict[str, str]] = {}
        for name in self.section_names():
            mapping: Dict[str, str] = {}
            for key, value in self.items(name):
                mapping.setdefault(key.lower(), value)
            out[name] = mapping
        return out

    # ------------------------------------------------------------------
    # 读写操作
    # ------------------------------------------------------------------

    def _eol(self) -> str:
        for line in self.lines:
            if line.eol:
                return line.eol
        return "\n"

    def _terminate(self, index: int) -> None:
        self.lines[index] = self.lines[index].terminated(self._eol())

    def _find(self, span: SectionSpan, key: str, commented_out: bool) -> Optional[int]:
        for i in span.body:
            line = self.lines[i]
            if line.matches(key) and line.commented_out == commented_out:
                return i
        return None

    def ensure_section(self, section: str) -> bool:
        """
        确保节存在，不存在时追加到文档末尾

        Returns:
            是否新建了节
        """
        if self.has_section(section):
            return False
        eol = self._eol()
        if self.lines:
            self._terminate(len(self.lines) - 1)
            if self.lines[-1].kind != LineKind.BLANK:
                self.lines.append(Line.blank(eol))
        self.lines.append(Line.section(section, eol))
        return True

    def get_value(self, section: str, key: str) -> Optional[str]:
        """读取节内第一个生效的键值，被注释的行会被忽略"""
        span = self.scope(section)
        if span is None:
            return None
        index = self._find(span, key, commented_out=False)
        if index is None:
            return None
        return self.lines[index].value

    def set_value(self, section: str, key: str, value: str) -> bool:
        """
        设置键值

        - 节内有被注释的键：取消注释并替换值
        - 否则有生效的键：原地替换值
        - 都没有：在节标题后插入 "key = value"
        节不存在时先创建。重复调用相同的值不会再产生字节变化。

        Returns:
            文档是否发生变化
        """
        changed = self.ensure_section(section)
        span = self.scope(section)

        index = self._find(span, key, commented_out=True)
        if index is None:
            index = self._find(span, key, commented_out=False)
        if index is not None:
            old = self.lines[index]
            new = old.uncommented().with_value(value)
            if new == old:
                return changed
            self.lines[index] = new
            return True

        self._terminate(span.header)
        self.lines.insert(span.header + 1, Line.key_value(key, value, self._eol()))
        return True

    def comment_key(self, section: str, key: str, marker: str = DEFAULT_COMMENT_MARKER) -> bool:
        """注释掉节内第一个生效的键，不存在时不做任何事"""
        span = self.scope(section)
        if span is None:
            return False
        index = self._find(span, key, commented_out=False)
        if index is None:
            return False
        self.lines[index] = self.lines[index].commented(marker)
        return True

    def uncomment_key(self, section: str, key: str) -> bool:
        """取消注释节内第一个被注释的键，不存在时不做任何事"""
        span = self.scope(section)
        if span is None:
            return False
        index = self._find(span, key, commented_out=True)
        if index is None:
            return False
        self.lines[index] = self.lines[index].uncommented()
        return True

    def normalize_order(self, section: str, ordered_keys: Sequence[str]) -> bool:
        """
        按给定顺序重排节内指定的键

        只移动列出的生效键，复用它们原来占据的行位置，
        其他行及其相对位置保持不变。同名键保持原有相对顺序。

        Args:
            section: 节名
            ordered_keys: 期望的键顺序，如 ["secret", "deny", "permit", "read", "write"]

        Returns:
            文档是否发生变化
        """
        span = self.scope(section)
        if span is None:
            return False
        rank = {key.lower(): pos for pos, key in enumerate(ordered_keys)}
        slots = [
            i for i in span.body
            if self.lines[i].is_active_key and self.lines[i].key.lower() in rank
        ]
        current = [self.lines[i] for i in slots]
        ordered = sorted(current, key=lambda line: rank[line.key.lower()])
        if ordered == current:
            return False

        ends_without_eol = bool(self.lines) and self.lines[-1].eol == ""
        eol = self._eol()
        for slot, line in zip(slots, ordered):
            self.lines[slot] = line.terminated(eol)
        if ends_without_eol:
            self.lines[-1] = replace(self.lines[-1], eol="")
        return True


def parse(data: Union[bytes, str]) -> ConfigDocument:
    """解析配置内容，见 ConfigDocument.parse"""
    return ConfigDocument.parse(data)
