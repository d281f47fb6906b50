"""
Unity Asset File Access

Built on UnityPy, which parses and writes the files themselves.

- type_tree: class layouts (TypeNode), field trees (Field) and the
  ClassSchemaRegistry lookup
- serialized_file: loading .assets files
- bundle_file: the template bundle a build writes into

Usage:
    from parsers import ClassSchemaRegistry, open_serialized_file

    schemas = ClassSchemaRegistry()
    sf = open_serialized_file("resources.assets")
    material = schemas.read(sf.objects[30])
"""

from .type_tree import (
    FieldKind,
    TypeNode,
    Field,
    ClassSchemaRegistry,
    build_fields,
    copy_fields,
    encode_object,
)

from .serialized_file import (
    load_environment,
    serialized_files,
    open_serialized_file,
)

from .bundle_file import (
    TemplateBundle,
    PACKERS,
)

__all__ = [
    'FieldKind',
    'TypeNode',
    'Field',
    'ClassSchemaRegistry',
    'build_fields',
    'copy_fields',
    'encode_object',
    'load_environment',
    'serialized_files',
    'open_serialized_file',
    'TemplateBundle',
    'PACKERS',
]
