"""
manager.conf 文档模型单元测试
"""
import pytest

from amidoctor.conf.ami_defaults import USER_KEY_ORDER
from amidoctor.conf.document import ConfigDocument, LineKind, parse
from conftest import SAMPLE_MANAGER_CONF


class TestRoundTrip:
    """解析后原样输出"""

    @pytest.mark.parametrize("data", [
        SAMPLE_MANAGER_CONF.encode("utf-8"),
        b"[general]\r\nenabled = yes\r\nport = 5038\r\n",
        b"[general]\nenabled = yes\nport = 5038",
        b"",
        b"\n\n\n",
        b"[admin]\nsecret = \xff\xfe\n",
        b";--\nold block\n--;\n[general]\nenabled=>yes\n",
        b"[template](!)\nread = all\n\t  \n[user](template)\nsecret=x\n",
    ])
    def test_serialize_is_byte_identical(self, data):
        """任意输入解析后再序列化应逐字节相同"""
        assert parse(data).serialize() == data

    def test_line_kinds(self):
        """行类型识别"""
        doc = parse(SAMPLE_MANAGER_CONF)
        kinds = [line.kind for line in doc.lines]

        assert kinds[0] == LineKind.COMMENT
        assert kinds[3] == LineKind.SECTION
        assert kinds[4] == LineKind.KEY_VALUE
        assert doc.lines[7].kind == LineKind.KEY_VALUE
        assert doc.lines[7].commented_out is True
        assert kinds[8] == LineKind.BLANK


class TestReading:
    """读取键值"""

    def test_get_value_strips_inline_comment(self):
        """行尾注释不属于值"""
        doc = parse(SAMPLE_MANAGER_CONF)

        assert doc.get_value("general", "bindaddr") == "127.0.0.1"
        assert doc.get_value("admin", "secret") == "hunter2"

    def test_commented_key_is_not_active(self):
        """被注释的键读不到"""
        doc = parse(SAMPLE_MANAGER_CONF)
        assert doc.get_value("general", "displayconnects") is None

    def test_key_match_is_case_insensitive(self):
        doc = parse("[general]\nEnabled = yes\n")
        assert doc.get_value("general", "enabled") == "yes"

    def test_arrow_separator(self):
        doc = parse("[admin]\nsecret => hunter2\n")
        assert doc.get_value("admin", "secret") == "hunter2"

    def test_block_comment_is_ignored(self):
        """块注释中的键不生效"""
        doc = parse("[admin]\n;--\nsecret = old\n--;\nsecret = new\n")
        assert doc.get_value("admin", "secret") == "new"

    def test_duplicate_section_uses_first_occurrence(self):
        """重复的节以第一次出现为准"""
        doc = parse("[admin]\nsecret = a\n[admin]\nsecret = b\n")

        assert doc.get_value("admin", "secret") == "a"
        assert doc.section_names() == ["admin"]

    def test_as_dict(self):
        doc = parse(SAMPLE_MANAGER_CONF)
        data = doc.as_dict()

        assert data["general"]["port"] == "5038"
        assert data["admin"]["write"] == "all"
        assert "displayconnects" not in data["general"]

    def test_missing_section(self):
        doc = parse(SAMPLE_MANAGER_CONF)

        assert doc.has_section("nobody") is False
        assert doc.get_value("nobody", "secret") is None


class TestEditing:
    """最小化修改"""

    def test_set_value_preserves_trailing_comment(self):
        """替换值时保留行尾注释，其他行不变"""
        doc = parse(SAMPLE_MANAGER_CONF)

        assert doc.set_value("admin", "secret", "s3cret") is True

        expected = SAMPLE_MANAGER_CONF.replace(
            "secret = hunter2 ; keep in sync with .env",
            "secret = s3cret ; keep in sync with .env"
        )
        assert doc.to_text() == expected

    def test_set_value_is_idempotent(self):
        """相同的值第二次设置不产生变化"""
        doc = parse(SAMPLE_MANAGER_CONF)
        doc.set_value("admin", "secret", "s3cret")
        first = doc.serialize()

        assert doc.set_value("admin", "secret", "s3cret") is False
        assert doc.serialize() == first

    def test_set_existing_value_changes_nothing(self):
        doc = parse(SAMPLE_MANAGER_CONF)

        assert doc.set_value("general", "port", "5038") is False
        assert doc.to_text() == SAMPLE_MANAGER_CONF

    def test_set_value_uncomments_commented_key(self):
        """已有被注释的同名键时取消注释而不是新增"""
        doc = parse(SAMPLE_MANAGER_CONF)

        doc.set_value("general", "displayconnects", "no")

        assert "displayconnects = no\n" in doc.to_text()
        assert ";displayconnects" not in doc.to_text()
        assert len(doc) == len(parse(SAMPLE_MANAGER_CONF))

    def test_set_value_prefers_commented_occurrence(self):
        """同时存在被注释和生效的键时，替换被注释的那一行"""
        doc = parse(b"[admin]\n;secret = old\nsecret = cur\n")

        assert doc.set_value("admin", "secret", "new") is True

        assert doc.serialize() == b"[admin]\nsecret = new\nsecret = cur\n"
        assert doc.get_value("admin", "secret") == "new"
        assert doc.set_value("admin", "secret", "new") is False

    def test_set_value_inserts_after_header(self):
        doc = parse(SAMPLE_MANAGER_CONF)

        doc.set_value("general", "timestampevents", "yes")

        assert "[general]\ntimestampevents = yes\nenabled = yes\n" in doc.to_text()

    def test_set_value_keeps_crlf(self):
        """新行使用文档原有的换行符"""
        doc = parse(b"[general]\r\nenabled = no\r\n")

        doc.set_value("general", "enabled", "yes")
        doc.set_value("general", "port", "5038")

        assert doc.serialize() == b"[general]\r\nport = 5038\r\nenabled = yes\r\n"

    def test_set_value_creates_section(self):
        doc = parse(SAMPLE_MANAGER_CONF)

        doc.set_value("ami_user", "secret", "x")

        assert doc.to_text().endswith("write = all\n\n[ami_user]\nsecret = x\n")

    def test_ensure_section_terminates_last_line(self):
        """最后一行没有换行符时先补上"""
        doc = parse("a=1")

        assert doc.ensure_section("x") is True
        assert doc.to_text() == "a=1\n\n[x]\n"
        assert doc.ensure_section("x") is False

    def test_set_value_writes_first_duplicate_section(self):
        doc = parse("[admin]\nsecret = a\n[admin]\nsecret = b\n")

        doc.set_value("admin", "secret", "c")

        assert doc.to_text() == "[admin]\nsecret = c\n[admin]\nsecret = b\n"

    def test_comment_and_uncomment_key(self):
        doc = parse(SAMPLE_MANAGER_CONF)

        assert doc.comment_key("admin", "deny") is True
        assert doc.get_value("admin", "deny") is None
        assert "; deny = 0.0.0.0/0.0.0.0\n" in doc.to_text()

        assert doc.uncomment_key("admin", "deny") is True
        assert doc.to_text() == SAMPLE_MANAGER_CONF

    def test_copy_is_independent(self):
        doc = parse(SAMPLE_MANAGER_CONF)
        clone = doc.copy()

        clone.set_value("admin", "secret", "changed")

        assert doc.get_value("admin", "secret") == "hunter2"


class TestNormalizeOrder:
    """键排序"""

    def test_orders_keys_in_place(self):
        """只在原有位置之间交换，注释行不动"""
        doc = parse("[admin]\npermit = x\nsecret = s\ndeny = y\n; note\nread = all\n")

        assert doc.normalize_order("admin", USER_KEY_ORDER) is True
        assert doc.to_text() == "[admin]\nsecret = s\ndeny = y\npermit = x\n; note\nread = all\n"

    def test_already_ordered(self):
        doc = parse(SAMPLE_MANAGER_CONF)

        assert doc.normalize_order("admin", USER_KEY_ORDER) is False
        assert doc.to_text() == SAMPLE_MANAGER_CONF

    def test_keeps_missing_final_newline(self):
        doc = parse("[g]\nport = 1\nenabled = yes")

        doc.normalize_order("g", ["enabled", "port"])

        assert doc.to_text() == "[g]\nenabled = yes\nport = 1"


class TestEmptyDocument:

    def test_new_document(self):
        doc = ConfigDocument()

        doc.set_value("general", "enabled", "yes")

        assert doc.to_text() == "[general]\nenabled = yes\n"
