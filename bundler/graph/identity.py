#!/usr/bin/env python3
"""
Object Identity Resolution

A reference field stores (m_FileID, m_PathID) relative to the file that
contains it: file id 0 is that file, file id n is the n-th entry of its
dependency (externals) table. GlobalIdentity turns such a pair into a key
that is unique across every loaded file.
"""

import struct
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Sequence, Union

from UnityPy.files import ObjectReader, SerializedFile

from parsers import ClassSchemaRegistry, Field, open_serialized_file
from utils import CorruptFileError, logDebug


class GlobalIdentity(NamedTuple):
    """(owning file path, path id) - the deduplication key for objects."""
    file_path: str
    path_id: int


class AssetsFileHandle:
    """
    A UnityPy SerializedFile plus the handles of its dependencies.

    dependencies[i] corresponds to file.externals[i], i.e. local file id i + 1.
    """

    def __init__(self, path: str, file: SerializedFile,
                 dependencies: List[Optional['AssetsFileHandle']] = None):
        self.path = path
        self.file = file
        self.dependencies: List[Optional['AssetsFileHandle']] = list(dependencies or [])

    def identity(self, path_id: int) -> GlobalIdentity:
        return GlobalIdentity(self.path, path_id)

    def has_object(self, path_id: int) -> bool:
        return path_id in self.file.objects

    def get_object(self, path_id: int) -> ObjectReader:
        return self.file.objects[path_id]

    def objects_of_type(self, class_id: int) -> List[ObjectReader]:
        """Objects of one class in object-table order."""
        return [obj for obj in self.file.objects.values() if obj.class_id == class_id]

    @property
    def dependency_paths(self) -> List[str]:
        return [external.path for external in self.file.externals]

    def read_fields(self, obj: ObjectReader, schemas: ClassSchemaRegistry) -> Field:
        try:
            return schemas.read(obj)
        except (ValueError, EOFError, struct.error) as e:
            raise CorruptFileError(f"{self.path}: object {obj.path_id} does not match its type tree ({e})") from e

    @staticmethod
    def read_name(fields: Field) -> Optional[str]:
        """The generic m_Name record, None when the class has none."""
        name = fields.find('m_Name')
        if name is None or not isinstance(name.value, str):
            return None
        return name.value

    def __repr__(self) -> str:
        return f"AssetsFileHandle({self.path!r}, objects={len(self.file.objects)})"


def resolve(owning_file: AssetsFileHandle, local_file_index: int) -> AssetsFileHandle:
    """
    Resolve a reference's file id against the file that holds the reference.

    Raises:
        CorruptFileError: file id outside the dependency table, or pointing at
            a dependency that was never opened
    """
    if local_file_index == 0:
        return owning_file

    if not 0 < local_file_index <= len(owning_file.file.externals):
        raise CorruptFileError(
            f"{owning_file.path}: file id {local_file_index} outside dependency table "
            f"of {len(owning_file.file.externals)} entries"
        )
    if local_file_index > len(owning_file.dependencies) or owning_file.dependencies[local_file_index - 1] is None:
        dependency = owning_file.file.externals[local_file_index - 1].path
        raise CorruptFileError(f"{owning_file.path}: dependency {local_file_index} ('{dependency}') is not loaded")

    return owning_file.dependencies[local_file_index - 1]


def to_identity(owning_file: AssetsFileHandle, local_file_index: int, path_id: int) -> GlobalIdentity:
    return resolve(owning_file, local_file_index).identity(path_id)


def open_with_dependencies(path: Union[str, Path],
                           search_paths: Sequence[Union[str, Path]] = ()) -> AssetsFileHandle:
    """
    Open an asset file and, transitively, every file in its dependency table.

    Dependencies are looked up by file name next to the source file first,
    then in each search path. Files are opened once and shared, so dependency
    cycles between files are fine.

    Raises:
        FileNotFoundError: a dependency cannot be found
    """
    path = Path(path).resolve()
    directories = [path.parent] + [Path(p) for p in search_paths]
    opened: Dict[str, AssetsFileHandle] = {}

    root = AssetsFileHandle(str(path), open_serialized_file(path))
    opened[root.path] = root
    pending = [root]

    while pending:
        handle = pending.pop()
        for external in handle.file.externals:
            location = _locate(external.path, directories)
            key = str(location)
            if key not in opened:
                logDebug(f"Opening dependency {external.path} -> {location}")
                opened[key] = AssetsFileHandle(key, open_serialized_file(location))
                pending.append(opened[key])
            handle.dependencies.append(opened[key])

    return root


def _locate(dependency_path: str, directories: List[Path]) -> Path:
    file_name = Path(dependency_path.replace('\\', '/')).name
    for directory in directories:
        candidate = directory / file_name
        if candidate.exists():
            return candidate.resolve()
    raise FileNotFoundError(
        f"Dependency '{dependency_path}' not found in: {', '.join(str(d) for d in directories)}"
    )
