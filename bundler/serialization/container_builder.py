#!/usr/bin/env python3
"""
Container and Patch Builder

Turns a collected closure into what the bundle file needs:
- the AssetBundle descriptor's m_Container table (name -> local object),
  one entry per member in closure order
- one BinaryPatch per member holding its localized data
- one BinaryPatch for the rewritten descriptor itself
- the bundle file's dependency table, which grows when preserved pointers
  still point at source files; m_Dependencies mirrors it

The patch list is sorted by path id before it leaves this module; Unity only
reads a SerializedFile whose object table ascends by path id.
"""

import copy
import struct
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from UnityPy.files import ObjectReader

from constants import CLASS_ASSET_BUNDLE, SCRIPT_INDEX_NONE, class_name
from graph import AssetsFileHandle, ClosureMember, resolve
from parsers import ClassSchemaRegistry, encode_object
from remapping import DanglingPolicy, localize
from utils import BuildCancelled, BundleError, CorruptFileError, log, logDebug

DESCRIPTOR_FIELDS = ('m_Name', 'm_AssetBundleName', 'm_Container', 'm_PreloadTable')


@dataclass(frozen=True)
class ContainerEntry:
    """One m_Container row; the asset always lives in the bundle file itself."""
    name: str
    path_id: int
    file_id: int = 0
    preload_index: int = 0
    preload_size: int = 0


@dataclass(frozen=True)
class BinaryPatch:
    """
    Replacement (or new) object for the bundle's SerializedFile.

    serialized_type and type_tree describe the object's class when the
    bundle file has no type entry for it yet.
    """
    path_id: int
    class_id: int
    script_type_index: int
    data: bytes = field(repr=False)
    serialized_type: Any = field(default=None, repr=False, compare=False)
    type_tree: Any = field(default=None, repr=False, compare=False)


@dataclass
class BuildResult:
    container_entries: List[ContainerEntry]
    patches: List[BinaryPatch]  # ascending path id, descriptor included
    externals: List[Any] = field(default_factory=list)  # UnityPy FileIdentifiers of the bundle file


class DependencyTable:
    """
    Externals of the bundle's SerializedFile: the template's own, then every
    source file a preserved pointer still needs.
    """

    def __init__(self, externals: Sequence[Any]):
        self.externals = list(externals)

    def add(self, external) -> int:
        """File id of external inside the bundle file, appending it when new."""
        for index, existing in enumerate(self.externals):
            if existing.path == external.path:
                return index + 1
        self.externals.append(copy.copy(external))
        logDebug(f"Added dependency {len(self.externals)}: {external.path}")
        return len(self.externals)

    @property
    def paths(self) -> List[str]:
        return [external.path for external in self.externals]


def find_descriptor(handle: AssetsFileHandle) -> ObjectReader:
    """The AssetBundle object of a bundle's SerializedFile."""
    descriptors = handle.objects_of_type(CLASS_ASSET_BUNDLE)
    if not descriptors:
        raise BundleError(f"{handle.path}: no AssetBundle object, not a bundle file")
    return descriptors[0]


def _encode(path: str, obj: ObjectReader, root, value) -> bytes:
    try:
        return encode_object(obj, root, value)
    except (KeyError, TypeError, ValueError, struct.error) as e:
        raise BundleError(
            f"{path}: cannot serialize {class_name(obj.class_id)} {obj.path_id} with its type tree ({e!r})"
        ) from e


def sort_patches(patches: Sequence[BinaryPatch]) -> List[BinaryPatch]:
    """
    Order patches by path id.

    Raises:
        BundleError: two patches share a path id (objects from different
            source files collided, or a member reuses the descriptor's id)
    """
    ordered = sorted(patches, key=lambda p: p.path_id)
    for previous, current in zip(ordered, ordered[1:]):
        if previous.path_id == current.path_id:
            raise BundleError(
                f"Two objects share path id {current.path_id} "
                f"({class_name(previous.class_id)} and {class_name(current.class_id)}); "
                f"the bundle cannot hold both"
            )
    return ordered


class ContainerBuilder:
    """
    Builds container entries and patches for one run.

    Usage:
        builder = ContainerBuilder(schemas)
        result = builder.build(closure, bundle_handle, "my_resources")
    """

    def __init__(self, schemas: ClassSchemaRegistry,
                 policy: DanglingPolicy = DanglingPolicy.LOCALIZE,
                 cancel: Optional[Callable[[], bool]] = None):
        self.schemas = schemas
        self.policy = policy
        self.cancel = cancel

    def build(self, closure: Sequence[ClosureMember], bundle_file: AssetsFileHandle,
              output_name: str) -> BuildResult:
        """
        Args:
            closure: Members in discovery order
            bundle_file: The template bundle's SerializedFile (holds the descriptor)
            output_name: New m_Name / m_AssetBundleName of the descriptor
        """
        identities = {member.identity for member in closure}
        dependencies = DependencyTable(bundle_file.file.externals)

        def in_closure(handle: AssetsFileHandle) -> Callable[[int, int], bool]:
            return lambda file_id, path_id: resolve(handle, file_id).identity(path_id) in identities

        def relink(handle: AssetsFileHandle) -> Callable[[int], int]:
            def to_bundle_file_id(file_id: int) -> int:
                if not 0 < file_id <= len(handle.file.externals):
                    raise CorruptFileError(f"{handle.path}: file id {file_id} outside dependency table")
                return dependencies.add(handle.file.externals[file_id - 1])
            return to_bundle_file_id

        entries: List[ContainerEntry] = []
        patches: List[BinaryPatch] = []

        for member in closure:
            if self.cancel is not None and self.cancel():
                raise BuildCancelled("Build cancelled while remapping assets")

            checker = None if self.policy == DanglingPolicy.LOCALIZE else in_closure(member.handle)
            relinker = relink(member.handle) if self.policy == DanglingPolicy.PRESERVE else None
            localized = localize(member.fields, self.policy, checker, relinker)

            root = member.fields.node
            patches.append(BinaryPatch(
                path_id=member.path_id,
                class_id=member.class_id,
                script_type_index=member.script_type_index,
                data=_encode(member.handle.path, member.obj, root, localized.value),
                serialized_type=getattr(member.obj, 'serialized_type', None),
                type_tree=root.unity,
            ))
            entries.append(ContainerEntry(name=member.name, path_id=member.path_id))

        patches.append(self._descriptor_patch(bundle_file, output_name, entries, dependencies.paths))

        ordered = sort_patches(patches)
        log(f"  Built {len(entries)} container entries and {len(ordered)} patches, "
            f"{len(dependencies.externals)} dependencies")
        return BuildResult(container_entries=entries, patches=ordered, externals=dependencies.externals)

    def _descriptor_patch(self, bundle_file: AssetsFileHandle, output_name: str,
                          entries: List[ContainerEntry], dependencies: List[str]) -> BinaryPatch:
        descriptor = find_descriptor(bundle_file)
        if not self.schemas.has(descriptor):
            raise BundleError(f"{bundle_file.path}: no schema for the AssetBundle object")
        fields = bundle_file.read_fields(descriptor, self.schemas)
        root, tree = fields.node, fields.value

        missing = [name for name in DESCRIPTOR_FIELDS if name not in tree]
        if missing:
            raise BundleError(f"{bundle_file.path}: AssetBundle object has no {', '.join(missing)}")

        tree['m_Name'] = output_name
        tree['m_AssetBundleName'] = output_name
        tree['m_Container'] = [self._container_pair(entry) for entry in entries]
        # No preload table is built; every entry has preloadIndex/Size 0
        tree['m_PreloadTable'] = []
        if 'm_Dependencies' in tree:
            tree['m_Dependencies'] = list(dependencies)

        logDebug(f"Descriptor {descriptor.path_id}: '{output_name}', {len(entries)} container entries")
        return BinaryPatch(
            path_id=descriptor.path_id,
            class_id=CLASS_ASSET_BUNDLE,
            script_type_index=SCRIPT_INDEX_NONE,
            data=_encode(bundle_file.path, descriptor, root, tree),
        )

    @staticmethod
    def _container_pair(entry: ContainerEntry) -> tuple:
        return (entry.name, {
            'preloadIndex': entry.preload_index,
            'preloadSize': entry.preload_size,
            'asset': {'m_FileID': entry.file_id, 'm_PathID': entry.path_id},
        })
