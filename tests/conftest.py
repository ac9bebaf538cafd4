import pytest
from google.protobuf import descriptor_pb2, descriptor_pool

from protoc_srcinfo.registry import SourceInfoRegistry
from protoc_srcinfo.source_info import encode_source_info

FieldProto = descriptor_pb2.FieldDescriptorProto

COMMENTS_FILE = "desc_test_comments.proto"
PUBLIC_FILE = "desc_test_public.proto"
PLAIN_FILE = "desc_test_plain.proto"

# The package statement is recorded with a single-line span.
PACKAGE_SPAN = [1, 0, 20]
SECOND_REQUEST_COMMENT = " Request again\n"


def _add_field(msg, name, number, type_, label=FieldProto.LABEL_OPTIONAL,
               type_name=None, oneof_index=None):
    f = msg.field.add(name=name, number=number, type=type_, label=label)
    if type_name:
        f.type_name = type_name
    if oneof_index is not None:
        f.oneof_index = oneof_index
    return f


def _comments_file() -> descriptor_pb2.FileDescriptorProto:
    fp = descriptor_pb2.FileDescriptorProto(name=COMMENTS_FILE, package="testprotos", syntax="proto2")

    req = fp.message_type.add(name="Request")
    _add_field(req, "ids", 1, FieldProto.TYPE_INT32, FieldProto.LABEL_REPEATED)
    _add_field(req, "name", 2, FieldProto.TYPE_STRING)
    _add_field(req, "extras", 3, FieldProto.TYPE_GROUP, type_name=".testprotos.Request.Extras")
    _add_field(req, "things", 4, FieldProto.TYPE_MESSAGE, FieldProto.LABEL_REPEATED,
               type_name=".testprotos.Request.ThingsEntry")
    _add_field(req, "a", 5, FieldProto.TYPE_INT32, oneof_index=0)
    _add_field(req, "b", 6, FieldProto.TYPE_STRING, oneof_index=0)

    extras = req.nested_type.add(name="Extras")
    _add_field(extras, "dob", 1, FieldProto.TYPE_INT64)

    entry = req.nested_type.add(name="ThingsEntry")
    entry.options.map_entry = True
    _add_field(entry, "key", 1, FieldProto.TYPE_STRING)
    _add_field(entry, "value", 2, FieldProto.TYPE_INT32)

    mario = req.enum_type.add(name="MarioCharacters")
    mario.value.add(name="MARIO", number=1)
    mario.value.add(name="LUIGI", number=2)

    req.oneof_decl.add(name="abc")
    req.extension_range.add(start=100, end=202)

    reply = fp.message_type.add(name="Reply")
    _add_field(reply, "reply_id", 1, FieldProto.TYPE_INT32)
    reply.extension.add(name="reply_ext", number=150, type=FieldProto.TYPE_STRING,
                        label=FieldProto.LABEL_OPTIONAL, extendee=".testprotos.Request")

    color = fp.enum_type.add(name="Color")
    color.value.add(name="RED", number=0)
    color.value.add(name="GREEN", number=1)

    fp.extension.add(name="guid", number=123, type=FieldProto.TYPE_UINT64,
                     label=FieldProto.LABEL_OPTIONAL, extendee=".testprotos.Request")

    svc = fp.service.add(name="RpcService")
    svc.method.add(name="StreamingRpc", input_type=".testprotos.Request",
                   output_type=".testprotos.Reply", client_streaming=True)
    svc.method.add(name="UnaryRpc", input_type=".testprotos.Request", output_type=".testprotos.Reply")
    return fp


def _public_file() -> descriptor_pb2.FileDescriptorProto:
    fp = descriptor_pb2.FileDescriptorProto(name=PUBLIC_FILE, package="testprotos.pub", syntax="proto2")
    fp.dependency.append(COMMENTS_FILE)
    fp.public_dependency.append(0)
    wrapper = fp.message_type.add(name="Wrapper")
    _add_field(wrapper, "req", 1, FieldProto.TYPE_MESSAGE, type_name=".testprotos.Request")
    _add_field(wrapper, "color", 2, FieldProto.TYPE_ENUM, type_name=".testprotos.Color")
    return fp


def _plain_file() -> descriptor_pb2.FileDescriptorProto:
    fp = descriptor_pb2.FileDescriptorProto(name=PLAIN_FILE, package="testprotos.plain", syntax="proto3")
    plain = fp.message_type.add(name="Plain")
    _add_field(plain, "x", 1, FieldProto.TYPE_INT32)
    return fp


class _LocationWriter:
    def __init__(self):
        self.info = descriptor_pb2.SourceCodeInfo()
        self._line = 3

    def add(self, path, name=None):
        loc = self.info.location.add()
        loc.path.extend(path)
        loc.span.extend([self._line, 0, self._line + 1, 1])
        if name is not None:
            loc.leading_comments = f" Comment for {name}\n"
        self._line += 2
        return loc

    def message(self, path, msg):
        self.add(path, msg.name)
        for i, f in enumerate(msg.field):
            self.add(path + [2, i], f.name)
        for i, nested in enumerate(msg.nested_type):
            self.message(path + [3, i], nested)
        for i, enum in enumerate(msg.enum_type):
            self.enum(path + [4, i], enum)
        for i, ext in enumerate(msg.extension):
            self.add(path + [6, i], ext.name)
        for i, oneof in enumerate(msg.oneof_decl):
            self.add(path + [8, i], oneof.name)

    def enum(self, path, enum):
        self.add(path, enum.name)
        for i, v in enumerate(enum.value):
            self.add(path + [2, i], v.name)


def source_info_for(fp: descriptor_pb2.FileDescriptorProto) -> descriptor_pb2.SourceCodeInfo:
    """Source info with a " Comment for <Name>\\n" leading comment on every element."""
    w = _LocationWriter()
    w.add([])
    pkg = w.info.location.add()
    pkg.path.append(fp.PACKAGE_FIELD_NUMBER)
    pkg.span.extend(PACKAGE_SPAN)
    for i, msg in enumerate(fp.message_type):
        w.message([4, i], msg)
    for i, enum in enumerate(fp.enum_type):
        w.enum([5, i], enum)
    for i, svc in enumerate(fp.service):
        w.add([6, i], svc.name)
        for j, m in enumerate(svc.method):
            w.add([6, i, 2, j], m.name)
    for i, ext in enumerate(fp.extension):
        w.add([7, i], ext.name)
    return w.info


@pytest.fixture
def file_protos():
    return {
        COMMENTS_FILE: _comments_file(),
        PUBLIC_FILE: _public_file(),
        PLAIN_FILE: _plain_file(),
    }


@pytest.fixture
def source_infos(file_protos):
    infos = {name: source_info_for(file_protos[name]) for name in (COMMENTS_FILE, PUBLIC_FILE)}
    # a second location for Request, recorded after everything else
    again = infos[COMMENTS_FILE].location.add()
    again.path.extend([4, 0])
    again.span.extend([200, 0, 201, 1])
    again.trailing_comments = SECOND_REQUEST_COMMENT
    return infos


@pytest.fixture
def pool(file_protos):
    p = descriptor_pool.DescriptorPool()
    for fp in file_protos.values():
        p.AddSerializedFile(fp.SerializeToString())
    return p


@pytest.fixture
def registry(pool, source_infos):
    reg = SourceInfoRegistry(pool=pool)
    for name, info in source_infos.items():
        reg.register(name, encode_source_info(info))
    return reg


@pytest.fixture
def comments_fd(pool):
    return pool.FindFileByName(COMMENTS_FILE)


@pytest.fixture
def request_md(pool):
    return pool.FindMessageTypeByName("testprotos.Request")
