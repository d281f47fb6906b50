#!/usr/bin/env python3
"""
Reference Remapper

Rewrites the reference fields of one object so that they point into the
bundle's own file. Once every collected object is copied into a single
SerializedFile, file id 0 ("this file") is the only file left, so each
cross-file pointer gets m_FileID = 0 while its m_PathID stays as it is.

Pointers that are already local (file id 0) or null (path id 0) are left
alone, which makes localize() idempotent.

Pointers whose target was not collected (script-backed objects, missing
schemas) are handled by DanglingPolicy. Under PRESERVE they keep pointing at
their external file; the relink callback gives that file's index in the
bundle's own dependency table.
"""

from enum import Enum
from typing import Callable, Iterator, Optional

from parsers import Field, FieldKind, copy_fields

# (file_id, path_id) of a pointer, relative to the owning object's file
MembershipCheck = Callable[[int, int], bool]
# source file id -> file id in the bundle's file
Relink = Callable[[int], int]


class DanglingPolicy(Enum):
    """What to do with a cross-file pointer whose target is not in the bundle."""
    LOCALIZE = "localize"  # zero the file id anyway; the pointer dangles locally
    PRESERVE = "preserve"  # keep it pointing at the external file
    NULL = "null"          # turn it into a null reference


def iter_references(root: Field) -> Iterator[Field]:
    """Yield every REFERENCE field under root, using an explicit work-list."""
    pending = [root]
    while pending:
        current = pending.pop()
        for child in current.children:
            kind = child.kind
            if kind == FieldKind.REFERENCE:
                yield child
            elif kind in (FieldKind.COMPOSITE, FieldKind.REFERENCE_ARRAY):
                pending.append(child)


def count_references(root: Field) -> int:
    """Number of non-null pointers into other files."""
    return sum(1 for ref in iter_references(root) if ref.file_id != 0 and ref.path_id != 0)


def localize(field_tree: Field,
             policy: DanglingPolicy = DanglingPolicy.LOCALIZE,
             in_closure: Optional[MembershipCheck] = None,
             relink: Optional[Relink] = None) -> Field:
    """
    Return a copy of field_tree with every cross-file pointer made local.

    Args:
        field_tree: Object fields as read from its source file (not modified)
        policy: Treatment of pointers whose target is not in the bundle
        in_closure: Tells whether a pointer's target was collected; required
            for PRESERVE and NULL
        relink: Maps a preserved pointer's file id to the bundle file's
            dependency table; without it PRESERVE keeps the file id as is

    Raises:
        ValueError: a policy needing in_closure was given without it
    """
    if policy != DanglingPolicy.LOCALIZE and in_closure is None:
        raise ValueError(f"Dangling policy '{policy.value}' needs a closure membership check")

    localized = copy_fields(field_tree)

    for pointer in iter_references(localized):
        file_id = pointer.file_id
        path_id = pointer.path_id

        if file_id == 0 or path_id == 0:
            continue

        if policy == DanglingPolicy.LOCALIZE or in_closure(file_id, path_id):
            pointer.set_pointer(0)
        elif policy == DanglingPolicy.NULL:
            pointer.set_pointer(0, 0)
        elif relink is not None:
            pointer.set_pointer(relink(file_id))

    return localized
