"""
Protobuf messages spoken on the shim socket.

Two schemas are involved: the ttrpc envelope (Request/Response carrying a
google.rpc.Status) and the containerd task service's Connect call. Both
are declared as descriptors and turned into message classes at import
time, so no generated _pb2 modules are needed.

REF: https://github.com/containerd/ttrpc/blob/main/request.proto
REF: https://github.com/containerd/containerd/blob/main/api/runtime/task/v2/shim.proto
"""

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

TASK_SERVICE = "containerd.task.v2.Task"
METHOD_CONNECT = "Connect"
NAMESPACE_METADATA_KEY = "containerd-namespace-ttrpc"

_Field = descriptor_pb2.FieldDescriptorProto

_pool = descriptor_pool.DescriptorPool()


def _field(
    name: str,
    number: int,
    field_type: int,
    type_name: str = "",
    repeated: bool = False,
) -> _Field:
    field = _Field(
        name=name,
        number=number,
        type=field_type,
        label=_Field.LABEL_REPEATED if repeated else _Field.LABEL_OPTIONAL,
    )
    if type_name:
        field.type_name = type_name
    return field


def _message(name: str, *fields: _Field) -> descriptor_pb2.DescriptorProto:
    return descriptor_pb2.DescriptorProto(name=name, field=list(fields))


def _register(
    name: str,
    package: str,
    *messages: descriptor_pb2.DescriptorProto,
    dependency: tuple[str, ...] = (),
) -> None:
    _pool.Add(
        descriptor_pb2.FileDescriptorProto(
            name=name,
            package=package,
            syntax="proto3",
            dependency=list(dependency),
            message_type=list(messages),
        )
    )


_register(
    "google/rpc/status.proto",
    "google.rpc",
    # details (repeated Any) is never inspected
    _message(
        "Status",
        _field("code", 1, _Field.TYPE_INT32),
        _field("message", 2, _Field.TYPE_STRING),
    ),
)

_register(
    "github.com/containerd/ttrpc/request.proto",
    "ttrpc",
    _message(
        "KeyValue",
        _field("key", 1, _Field.TYPE_STRING),
        _field("value", 2, _Field.TYPE_STRING),
    ),
    _message(
        "Request",
        _field("service", 1, _Field.TYPE_STRING),
        _field("method", 2, _Field.TYPE_STRING),
        _field("payload", 3, _Field.TYPE_BYTES),
        _field("timeout_nano", 4, _Field.TYPE_INT64),
        _field("metadata", 5, _Field.TYPE_MESSAGE, ".ttrpc.KeyValue", repeated=True),
    ),
    _message(
        "Response",
        _field("status", 1, _Field.TYPE_MESSAGE, ".google.rpc.Status"),
        _field("payload", 2, _Field.TYPE_BYTES),
    ),
    dependency=("google/rpc/status.proto",),
)

_register(
    "github.com/containerd/containerd/api/runtime/task/v2/shim.proto",
    "containerd.task.v2",
    _message("ConnectRequest", _field("id", 1, _Field.TYPE_STRING)),
    _message(
        "ConnectResponse",
        _field("shim_pid", 1, _Field.TYPE_UINT32),
        _field("task_pid", 2, _Field.TYPE_UINT32),
        _field("version", 3, _Field.TYPE_STRING),
    ),
)


def _message_class(full_name: str) -> type:
    return message_factory.GetMessageClass(_pool.FindMessageTypeByName(full_name))


Status = _message_class("google.rpc.Status")
KeyValue = _message_class("ttrpc.KeyValue")
Request = _message_class("ttrpc.Request")
Response = _message_class("ttrpc.Response")
ConnectRequest = _message_class("containerd.task.v2.ConnectRequest")
ConnectResponse = _message_class("containerd.task.v2.ConnectResponse")
