"""
Serialization Package

Output side of the bundle build.

- container_builder: container table, binary patches and dependency table
  from a closure
- serialized_file_writer: patches applied to the bundle's SerializedFile
- archive_writer: UnityFS output and the atomic commit to disk
"""

from .container_builder import (
    ContainerEntry,
    BinaryPatch,
    BuildResult,
    ContainerBuilder,
    DependencyTable,
    find_descriptor,
    sort_patches,
)
from .serialized_file_writer import apply_patches, check_patch_order
from .archive_writer import ArchiveWriter, commit
