import pytest

from protoc_srcinfo.paths import (
    Kind,
    descriptor_kind,
    excluded_from_comments,
    is_group_like,
    is_map_entry,
    parent_file,
    parent_of,
    path_for,
)


@pytest.fixture
def descs(pool, request_md):
    color = pool.FindEnumTypeByName("testprotos.Color")
    mario = request_md.enum_types_by_name["MarioCharacters"]
    svc = pool.FindServiceByName("testprotos.RpcService")
    return {
        "file": request_md.file,
        "request": request_md,
        "reply": pool.FindMessageTypeByName("testprotos.Reply"),
        "name": request_md.fields_by_name["name"],
        "b": request_md.fields_by_name["b"],
        "extras_field": request_md.fields_by_name["extras"],
        "things": request_md.fields_by_name["things"],
        "extras": request_md.nested_types_by_name["Extras"],
        "entry": request_md.nested_types_by_name["ThingsEntry"],
        "abc": request_md.oneofs_by_name["abc"],
        "mario": mario,
        "luigi": mario.values_by_name["LUIGI"],
        "color": color,
        "green": color.values_by_name["GREEN"],
        "guid": pool.FindExtensionByName("testprotos.guid"),
        "reply_ext": pool.FindExtensionByName("testprotos.Reply.reply_ext"),
        "service": svc,
        "unary": svc.methods_by_name["UnaryRpc"],
    }


class TestDescriptorKind:
    def test_kinds(self, descs):
        assert descriptor_kind(descs["file"]) is Kind.FILE
        assert descriptor_kind(descs["request"]) is Kind.MESSAGE
        assert descriptor_kind(descs["name"]) is Kind.FIELD
        assert descriptor_kind(descs["guid"]) is Kind.EXTENSION
        assert descriptor_kind(descs["abc"]) is Kind.ONEOF
        assert descriptor_kind(descs["color"]) is Kind.ENUM
        assert descriptor_kind(descs["green"]) is Kind.ENUM_VALUE
        assert descriptor_kind(descs["service"]) is Kind.SERVICE
        assert descriptor_kind(descs["unary"]) is Kind.METHOD

    def test_not_a_descriptor(self):
        assert descriptor_kind("testprotos.Request") is None
        assert descriptor_kind(None) is None
        assert path_for(object()) is None


class TestParents:
    def test_parent_of(self, descs):
        assert parent_of(descs["file"]) is None
        assert parent_of(descs["request"]) is descs["file"]
        assert parent_of(descs["extras"]) is descs["request"]
        assert parent_of(descs["name"]) is descs["request"]
        assert parent_of(descs["abc"]) is descs["request"]
        assert parent_of(descs["mario"]) is descs["request"]
        assert parent_of(descs["luigi"]) is descs["mario"]
        assert parent_of(descs["guid"]) is descs["file"]
        assert parent_of(descs["reply_ext"]) is descs["reply"]
        assert parent_of(descs["unary"]) is descs["service"]

    def test_parent_file(self, descs):
        for d in descs.values():
            assert parent_file(d) is descs["file"]


class TestPathFor:
    @pytest.mark.parametrize("key, expected", [
        ("file", ()),
        ("request", (4, 0)),
        ("reply", (4, 1)),
        ("name", (4, 0, 2, 1)),
        ("b", (4, 0, 2, 5)),
        ("extras", (4, 0, 3, 0)),
        ("entry", (4, 0, 3, 1)),
        ("abc", (4, 0, 8, 0)),
        ("mario", (4, 0, 4, 0)),
        ("luigi", (4, 0, 4, 0, 2, 1)),
        ("color", (5, 0)),
        ("green", (5, 0, 2, 1)),
        ("service", (6, 0)),
        ("unary", (6, 0, 2, 1)),
        ("guid", (7, 0)),
        ("reply_ext", (4, 1, 6, 0)),
    ])
    def test_paths(self, descs, key, expected):
        assert path_for(descs[key]) == expected


class TestCommentExclusion:
    def test_group_field(self, descs):
        assert is_group_like(descs["extras_field"])
        assert excluded_from_comments(descs["extras_field"])
        # the group's message keeps its comment
        assert not excluded_from_comments(descs["extras"])

    def test_map_entry(self, descs):
        entry = descs["entry"]
        assert is_map_entry(entry)
        assert not is_map_entry(descs["request"])
        assert excluded_from_comments(entry)
        assert excluded_from_comments(entry.fields_by_name["key"])
        assert excluded_from_comments(entry.fields_by_name["value"])
        assert not excluded_from_comments(descs["things"])

    def test_regular_elements(self, descs):
        for key in ("request", "name", "b", "abc", "mario", "luigi", "color", "service", "unary", "guid"):
            assert not excluded_from_comments(descs[key])
        assert not is_group_like(descs["things"])
        assert not is_group_like(descs["name"])
