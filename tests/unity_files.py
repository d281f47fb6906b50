"""
Writes small Unity files for the tests.

UnityPy reads, edits and re-saves asset files but does not create them, so
the fixtures are assembled here: a SerializedFile (format 19, little endian,
embedded type trees) and an uncompressed UnityFS archive around it. The
result is loaded back through UnityPy like any file from a game.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

UNITY_VERSION = "2019.4.40f1"
SERIALIZED_VERSION = 19
BUNDLE_VERSION = 7
TARGET_PLATFORM = 19  # StandaloneWindows64

ALIGN = 0x4000
BLOCKS_AND_DIRECTORY_COMBINED = 0x40
ENTRY_SERIALIZED_FILE = 0x04

SCALAR_FORMATS = {
    "bool": "?", "char": "B", "SInt8": "b", "UInt8": "B",
    "short": "h", "SInt16": "h", "unsigned short": "H", "UInt16": "H",
    "int": "i", "SInt32": "i", "Type*": "i", "unsigned int": "I", "UInt32": "I",
    "long long": "q", "SInt64": "q", "unsigned long long": "Q", "UInt64": "Q", "FileSize": "q",
    "float": "f", "double": "d",
}


@dataclass
class Node:
    """Type tree node as written into the file's type table."""
    type: str
    name: str
    children: List["Node"] = field(default_factory=list)
    meta_flags: int = 0


@dataclass
class UnityObject:
    path_id: int
    class_id: int
    layout: Node
    value: Dict[str, Any]
    script_type_index: int = -1


class Writer:
    def __init__(self, endian: str = "<"):
        self.endian = endian
        self.buffer = bytearray()

    def __len__(self) -> int:
        return len(self.buffer)

    def pack(self, fmt: str, *values):
        self.buffer += struct.pack(self.endian + fmt, *values)

    def write(self, data: bytes):
        self.buffer += data

    def stringz(self, text: str):
        self.buffer += text.encode("utf-8") + b"\x00"

    def align(self, alignment: int = 4):
        self.buffer += b"\x00" * (-len(self.buffer) % alignment)


def encode_value(writer: Writer, node: Node, value: Any):
    if node.type == "string":
        data = value.encode("utf-8")
        writer.pack("i", len(data))
        writer.write(data)
        writer.align()
    elif node.type in SCALAR_FORMATS:
        writer.pack(SCALAR_FORMATS[node.type], value)
    elif node.type == "TypelessData":
        writer.pack("i", len(value))
        writer.write(bytes(value))
    elif node.children and node.children[0].type == "Array":
        array = node.children[0]
        items = list(value)
        writer.pack("i", len(items))
        for item in items:
            encode_value(writer, array.children[1], item)
        if array.meta_flags & ALIGN:
            writer.align()
    elif node.type == "pair":
        encode_value(writer, node.children[0], value[0])
        encode_value(writer, node.children[1], value[1])
    else:
        for child in node.children:
            encode_value(writer, child, value[child.name])

    if node.meta_flags & ALIGN:
        writer.align()


def encode_object(layout: Node, value: Dict[str, Any]) -> bytes:
    writer = Writer()
    encode_value(writer, layout, value)
    return bytes(writer.buffer)


def _type_tree_blob(writer: Writer, root: Node):
    flat: List[Tuple[int, Node]] = []
    pending = [(0, root)]
    while pending:
        level, node = pending.pop()
        flat.append((level, node))
        pending.extend((level + 1, child) for child in reversed(node.children))

    strings = bytearray()
    offsets: Dict[str, int] = {}

    def offset(text: str) -> int:
        if text not in offsets:
            offsets[text] = len(strings)
            strings.extend(text.encode("utf-8") + b"\x00")
        return offsets[text]

    writer.pack("i", len(flat))
    nodes = Writer(writer.endian)
    for index, (level, node) in enumerate(flat):
        fmt = SCALAR_FORMATS.get(node.type)
        byte_size = struct.calcsize(fmt) if fmt else -1
        type_flags = 1 if node.type == "Array" else 0
        nodes.pack("HBBIIiiiQ", 1, level, type_flags, offset(node.type), offset(node.name),
                   byte_size, index, node.meta_flags, 0)
    writer.pack("i", len(strings))
    writer.write(bytes(nodes.buffer))
    writer.write(bytes(strings))


def serialized_file_bytes(objects: Sequence[UnityObject], externals: Sequence[str] = ()) -> bytes:
    """One SerializedFile holding objects (ascending path ids) and the given dependency paths."""
    types: List[Tuple[int, int, Node]] = []
    type_ids: Dict[Tuple[int, int], int] = {}
    for obj in objects:
        key = (obj.class_id, obj.script_type_index)
        if key not in type_ids:
            type_ids[key] = len(types)
            types.append((obj.class_id, obj.script_type_index, obj.layout))

    objects = sorted(objects, key=lambda o: o.path_id)
    payloads = [encode_object(obj.layout, obj.value) for obj in objects]

    # Header: metadata_size, file_size, version, data_offset (big endian), endianness, reserved
    meta = Writer("<")
    meta.write(b"\x00" * 20)
    meta.stringz(UNITY_VERSION)
    meta.pack("i", TARGET_PLATFORM)
    meta.pack("?", True)

    meta.pack("i", len(types))
    for class_id, script_type_index, layout in types:
        meta.pack("i", class_id)
        meta.pack("?", False)
        meta.pack("h", script_type_index)
        if class_id == 114:
            meta.write(b"\x00" * 16)
        meta.write(b"\x00" * 16)
        _type_tree_blob(meta, layout)

    data = Writer("<")
    starts = []
    for payload in payloads:
        data.align(8)
        starts.append(len(data))
        data.write(payload)

    meta.pack("i", len(objects))
    for obj, start, payload in zip(objects, starts, payloads):
        meta.align(4)
        meta.pack("qIIi", obj.path_id, start, len(payload), type_ids[(obj.class_id, obj.script_type_index)])

    meta.pack("i", 0)  # script types

    meta.pack("i", len(externals))
    for path in externals:
        meta.stringz("")
        meta.write(b"\x00" * 16)
        meta.pack("i", 0)
        meta.stringz(path)

    meta.stringz("")  # user information

    metadata_size = len(meta) - 20
    meta.align(16)
    data_offset = len(meta)
    file_size = data_offset + len(data)

    header = struct.pack(">IIII", metadata_size, file_size, SERIALIZED_VERSION, data_offset) + b"\x00\x00\x00\x00"
    return header + bytes(meta.buffer[20:]) + bytes(data.buffer)


def bundle_bytes(entries: Sequence[Tuple[str, bytes, int]]) -> bytes:
    """Uncompressed UnityFS archive; entries are (path, data, flags)."""
    stream = b"".join(data for _, data, _ in entries)

    info = Writer(">")
    info.write(b"\x00" * 16)
    info.pack("i", 1)
    info.pack("IIH", len(stream), len(stream), 0)
    info.pack("i", len(entries))
    offset = 0
    for path, data, flags in entries:
        info.pack("qqI", offset, len(data), flags)
        info.stringz(path)
        offset += len(data)

    header = Writer(">")
    header.stringz("UnityFS")
    header.pack("I", BUNDLE_VERSION)
    header.stringz("5.x.x")
    header.stringz(UNITY_VERSION)
    size_at = len(header)
    header.pack("q", 0)
    header.pack("III", len(info), len(info), BLOCKS_AND_DIRECTORY_COMBINED)
    header.align(16)

    total = len(header) + len(info) + len(stream)
    header.buffer[size_at:size_at + 8] = struct.pack(">q", total)
    return bytes(header.buffer) + bytes(info.buffer) + stream
