#!/usr/bin/env python3
"""
Archive Writer

Produces the final UnityFS bytes:
1. Apply all patches to the template's SerializedFile and install the
   bundle's dependency table
2. Rename that entry to a fresh CAB-<hex> name, other entries untouched
3. Let UnityPy save the bundle, compressed as configured
4. Commit to disk through a temporary file so a failed or cancelled build
   never leaves a half-written bundle behind
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, TYPE_CHECKING

from parsers import TemplateBundle
from utils import BuildCancelled, generate_cab_name, log
from .serialized_file_writer import apply_patches

if TYPE_CHECKING:
    from .container_builder import BinaryPatch


class ArchiveWriter:
    """
    Writes the rebuilt bundle.

    Usage:
        writer = ArchiveWriter(template)
        data = writer.write(result.patches, "my_resources", result.externals)
        commit(data, Path("out/my_resources"))
    """

    def __init__(self, template: TemplateBundle, packer: str = 'none',
                 cancel: Optional[Callable[[], bool]] = None):
        self.template = template
        self.packer = packer
        self.cancel = cancel
        self.entry_name: Optional[str] = None

    def write(self, patches: Sequence['BinaryPatch'], output_name: str,
              externals: Optional[List[Any]] = None) -> bytes:
        """
        Args:
            patches: Ascending by path id (see container_builder.sort_patches)
            output_name: Bundle name, used to derive the internal entry name
            externals: Dependency table of the bundle file; None keeps the
                template's
        """
        self._check_cancel()
        sf = self.template.file
        apply_patches(sf, patches)
        if externals is not None:
            sf.externals = list(externals)
            sf.mark_changed()

        self.entry_name = generate_cab_name(output_name, *(p.data for p in patches),
                                            *(e.path for e in sf.externals))
        self.template.rename_entry(self.entry_name)
        log(f"  Serialized file: {len(sf.objects)} objects as {self.entry_name}")

        self._check_cancel()
        data = self.template.save(self.packer)
        log(f"  Bundle: {len(data):,} bytes, {len(self.template.entry_names)} entries, compression {self.packer}")
        return data

    def _check_cancel(self):
        if self.cancel is not None and self.cancel():
            raise BuildCancelled("Build cancelled while writing the bundle")


def commit(data: bytes, output_path: Path):
    """
    Replace output_path with data, writing to a temporary sibling first.
    Any previous file at output_path is discarded only once data is on disk.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(prefix=f".{output_path.name}.", suffix=".tmp", dir=output_path.parent)
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(temp_name, output_path)
    except BaseException:
        if os.path.exists(temp_name):
            os.remove(temp_name)
        raise

    log(f"  Written {output_path} ({len(data) / 1024 / 1024:.2f} MB)")
