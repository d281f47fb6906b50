"""
Type Tree Field Model

Schema-driven view over one object's data, built on UnityPy's type trees.

UnityPy reads an object with obj.read_typetree(), which gives plain Python
values: dicts for structures, lists for vectors, (first, second) tuples for
map/pair entries and {'m_FileID', 'm_PathID'} dicts for PPtr fields. A
TypeNode mirrors one UnityPy TypeTreeNode and is classified once, when it is
built, into a FieldKind; everything downstream dispatches on that kind and
never looks at type names again.

Class layouts come from, in order:
- layouts registered on the ClassSchemaRegistry
- the type tree embedded in the object's file
- UnityPy's TPK class database for the file's Unity version

Usage:
    schemas = ClassSchemaRegistry()
    root = schemas.read(obj)
    shader = root.get("m_Shader")
    print(shader.file_id, shader.path_id)
"""

import copy
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from UnityPy.helpers.Tpk import get_typetree_node
from UnityPy.streams import EndianBinaryWriter

from constants import FILE_ID_FIELD, PATH_ID_FIELD

PRIMITIVE_TYPES = frozenset((
    'bool', 'char', 'SInt8', 'UInt8', 'short', 'SInt16', 'unsigned short', 'UInt16',
    'int', 'SInt32', 'Type*', 'unsigned int', 'UInt32', 'long long', 'SInt64',
    'unsigned long long', 'UInt64', 'FileSize', 'float', 'double',
))

STRING_TYPE = 'string'
ARRAY_TYPE = 'Array'
TYPELESS_DATA_TYPE = 'TypelessData'


class FieldKind(Enum):
    SCALAR = "scalar"
    SCALAR_ARRAY = "scalar_array"
    COMPOSITE = "composite"
    REFERENCE = "reference"
    REFERENCE_ARRAY = "reference_array"


class TypeNode:
    """
    One node of a class layout. Children must be built before their parent.

    A node whose first child is an "Array" node (vector, map, staticvector)
    holds a list; its element layout is the Array's data child.
    """

    __slots__ = ('type', 'name', 'children', 'meta_flags', 'unity', 'kind')

    def __init__(self, type: str, name: str, children: List['TypeNode'] = None,
                 meta_flags: int = 0, unity: Any = None):
        self.type = type
        self.name = name
        self.children = list(children or [])
        self.meta_flags = meta_flags
        self.unity = unity
        self.kind = self._classify()

    def _classify(self) -> FieldKind:
        if self.type == TYPELESS_DATA_TYPE:
            return FieldKind.SCALAR_ARRAY
        if self.type in PRIMITIVE_TYPES or self.type == STRING_TYPE:
            return FieldKind.SCALAR

        if self.is_array:
            array = self.children[0]
            if len(array.children) != 2:
                raise ValueError(f"Array under '{self.name}' needs size and data children")
            element_kind = self.element.kind
            if element_kind == FieldKind.SCALAR:
                return FieldKind.SCALAR_ARRAY
            if element_kind == FieldKind.REFERENCE:
                return FieldKind.REFERENCE_ARRAY
            return FieldKind.COMPOSITE

        if self.type.startswith('PPtr<') and self.type.endswith('>'):
            return FieldKind.REFERENCE

        return FieldKind.COMPOSITE

    @property
    def is_array(self) -> bool:
        return bool(self.children) and self.children[0].type == ARRAY_TYPE

    @property
    def element(self) -> 'TypeNode':
        """Element layout of an array node."""
        return self.children[0].children[1]

    def child(self, name: str) -> Optional['TypeNode']:
        for node in self.children:
            if node.name == name:
                return node
        return None

    @classmethod
    def from_unity(cls, node: Any) -> 'TypeNode':
        """Mirror a UnityPy TypeTreeNode (m_Type, m_Name, m_MetaFlag, m_Children)."""
        children = [cls.from_unity(child) for child in (node.m_Children or [])]
        return cls(node.m_Type, node.m_Name, children, node.m_MetaFlag or 0, unity=node)

    def walk(self) -> Iterator[Tuple[int, 'TypeNode']]:
        """Yield (level, node) in pre-order."""
        stack = [(0, self)]
        while stack:
            level, node = stack.pop()
            yield level, node
            for child in reversed(node.children):
                stack.append((level + 1, child))

    def __repr__(self) -> str:
        return f"TypeNode({self.type!r}, {self.name!r}, kind={self.kind.value})"


class Field:
    """
    Value of one TypeNode inside an object.

    - SCALAR / SCALAR_ARRAY: value is the plain value (list, bytes, ...)
    - REFERENCE: value is the {'m_FileID', 'm_PathID'} dict of the tree
    - REFERENCE_ARRAY / array COMPOSITE: children are the elements
    - COMPOSITE: children follow node.children

    value always points into the tree the field was built from, so setting a
    pointer changes that tree.
    """

    __slots__ = ('node', 'value', 'children')

    def __init__(self, node: TypeNode, value: Any = None, children: List['Field'] = None):
        self.node = node
        self.value = value
        self.children = children if children is not None else []

    @property
    def kind(self) -> FieldKind:
        return self.node.kind

    @property
    def name(self) -> str:
        return self.node.name

    def find(self, path: str) -> Optional['Field']:
        current = self
        for part in path.split('/'):
            if current.node.is_array:
                return None
            current = next((c for c in current.children if c.node.name == part), None)
            if current is None:
                return None
        return current

    def get(self, path: str) -> 'Field':
        """Child field by slash path, e.g. get("m_ParsedForm/m_Name")."""
        found = self.find(path)
        if found is None:
            raise KeyError(f"No field '{path}' under '{self.name}' ({self.node.type})")
        return found

    @property
    def file_id(self) -> int:
        return self.value[FILE_ID_FIELD]

    @property
    def path_id(self) -> int:
        return self.value[PATH_ID_FIELD]

    def set_pointer(self, file_id: int, path_id: Optional[int] = None):
        if self.kind != FieldKind.REFERENCE:
            raise TypeError(f"Field '{self.name}' of kind {self.kind.value} is not a reference")
        self.value[FILE_ID_FIELD] = file_id
        if path_id is not None:
            self.value[PATH_ID_FIELD] = path_id

    def __len__(self) -> int:
        if self.kind == FieldKind.SCALAR_ARRAY:
            return len(self.value)
        return len(self.children)

    def __repr__(self) -> str:
        if self.kind == FieldKind.SCALAR:
            return f"Field({self.name}={self.value!r})"
        return f"Field({self.name}, kind={self.kind.value}, children={len(self.children)})"


def build_fields(value: Any, node: TypeNode) -> Field:
    """Wrap a read_typetree() value in a Field tree following node."""
    kind = node.kind
    if kind in (FieldKind.SCALAR, FieldKind.SCALAR_ARRAY, FieldKind.REFERENCE):
        return Field(node, value)

    if node.is_array:
        element = node.element
        return Field(node, value, [build_fields(item, element) for item in value])

    if isinstance(value, (tuple, list)):
        # pair entries of a map
        children = [build_fields(item, child) for child, item in zip(node.children, value)]
    else:
        children = [build_fields(value[child.name], child) for child in node.children if child.name in value]
    return Field(node, value, children)


def copy_fields(field: Field) -> Field:
    """Deep copy of a field tree and the values under it."""
    return build_fields(copy.deepcopy(field.value), field.node)


def encode_object(obj, root: TypeNode, value: Any) -> bytes:
    """
    Serialize value with UnityPy's type tree writer, in obj's byte order.

    Works on a detached copy of obj so the source object keeps its data.
    """
    writer = EndianBinaryWriter(endian=obj.reader.endian)
    copy.copy(obj).save_typetree(value, nodes=root.unity, writer=writer)
    return writer.bytes


class ClassSchemaRegistry:
    """
    Class layout lookup for UnityPy objects.

    Registered layouts win over the file's embedded type tree, which wins
    over the TPK class database. A class none of them knows has no schema.
    """

    def __init__(self, embedded: bool = True, class_database: bool = True):
        self.embedded = embedded
        self.class_database = class_database
        self._registered: Dict[int, TypeNode] = {}
        self._cache: Dict[Any, Optional[TypeNode]] = {}

    def register(self, class_id: int, node: Any):
        """Use a UnityPy TypeTreeNode for every object of class_id."""
        self._registered[class_id] = TypeNode.from_unity(node)

    def find(self, obj) -> Optional[TypeNode]:
        class_id = obj.class_id
        if class_id in self._registered:
            return self._registered[class_id]

        serialized_type = getattr(obj, 'serialized_type', None)
        embedded = getattr(serialized_type, 'node', None) if serialized_type is not None else None
        if self.embedded and embedded is not None:
            key = ('embedded', id(embedded))
            if key not in self._cache:
                self._cache[key] = TypeNode.from_unity(embedded)
            return self._cache[key]

        if not self.class_database:
            return None
        version = tuple(obj.assets_file.version)
        key = ('tpk', class_id, version)
        if key not in self._cache:
            self._cache[key] = self._from_class_database(class_id, version)
        return self._cache[key]

    @staticmethod
    def _from_class_database(class_id: int, version: tuple) -> Optional[TypeNode]:
        try:
            node = get_typetree_node(class_id, version)
        except KeyError:
            return None
        return TypeNode.from_unity(node) if node is not None else None

    def has(self, obj) -> bool:
        return self.find(obj) is not None

    def get(self, obj) -> TypeNode:
        root = self.find(obj)
        if root is None:
            raise KeyError(f"No schema for class {obj.class_id}")
        return root

    def read(self, obj) -> Field:
        """Parse obj's data into a Field tree."""
        root = self.get(obj)
        return build_fields(obj.read_typetree(nodes=root.unity), root)
