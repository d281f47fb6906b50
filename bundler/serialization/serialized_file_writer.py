#!/usr/bin/env python3
"""
SerializedFile Patching

Applies binary patches to the bundle's UnityPy SerializedFile in place;
UnityPy writes the file when the bundle is saved.

- A patch whose path id names an object of the same class replaces its data.
- Any other patch becomes a new object: a copy of an existing ObjectReader
  with its ids, type and data swapped, as UnityPy would have read it.
- A class missing from the type table gets the source file's type entry.
  When the source was stripped of type trees the class layout is filled in,
  so a template that embeds type trees can still describe the object.
- The object table is re-sorted by path id; UnityPy writes it in that order.
"""

import copy
from typing import Sequence, TYPE_CHECKING

from UnityPy.enums import ClassIDType
from UnityPy.files import SerializedFile

from constants import SCRIPT_INDEX_NONE, class_name
from utils import BundleError, logDebug

if TYPE_CHECKING:
    from .container_builder import BinaryPatch


def check_patch_order(patches: Sequence['BinaryPatch']):
    """Patches must ascend strictly by path id."""
    for previous, current in zip(patches, patches[1:]):
        if current.path_id <= previous.path_id:
            raise BundleError(
                f"Patches out of order: path id {current.path_id} follows {previous.path_id}"
            )


def apply_patches(sf: SerializedFile, patches: Sequence['BinaryPatch']):
    """
    Args:
        sf: The bundle's SerializedFile, changed in place
        patches: Ascending by path id, no duplicates

    Raises:
        BundleError: patches out of order, or a new class comes without a
            type entry to copy
    """
    check_patch_order(patches)
    if not sf.objects:
        raise BundleError("Bundle file holds no objects to start from")
    prototype = next(iter(sf.objects.values()))

    replaced = added = 0
    for patch in patches:
        existing = sf.objects.get(patch.path_id)
        if existing is not None and existing.class_id == patch.class_id:
            existing.set_raw_data(patch.data)
            replaced += 1
            continue

        type_id = _find_or_add_type(sf, patch)
        obj = copy.copy(prototype)
        obj.__dict__.update(
            path_id=patch.path_id,
            type_id=type_id,
            serialized_type=sf.types[type_id],
            class_id=patch.class_id,
            type=ClassIDType(patch.class_id),
            byte_size=len(patch.data),
        )
        obj.set_raw_data(patch.data)
        sf.objects[patch.path_id] = obj
        added += 1

    sf.objects = dict(sorted(sf.objects.items()))
    sf.mark_changed()
    logDebug(f"SerializedFile: {replaced} objects replaced, {added} added, {len(sf.types)} types")


def _find_or_add_type(sf: SerializedFile, patch: 'BinaryPatch') -> int:
    script_type_index = -1 if patch.script_type_index == SCRIPT_INDEX_NONE else patch.script_type_index
    for index, serialized_type in enumerate(sf.types):
        if serialized_type.class_id == patch.class_id and serialized_type.script_type_index == script_type_index:
            return index

    if patch.serialized_type is None:
        raise BundleError(f"Cannot add {class_name(patch.class_id)} to the bundle: no type entry to copy")

    new_type = copy.copy(patch.serialized_type)
    if getattr(new_type, 'node', None) is None and patch.type_tree is not None:
        new_type.node = patch.type_tree
    sf.types.append(new_type)
    logDebug(f"Added type entry {len(sf.types) - 1}: {class_name(patch.class_id)}")
    return len(sf.types) - 1
