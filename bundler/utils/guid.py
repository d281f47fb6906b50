"""
Deterministic GUID Generation

GUIDs are derived from SHA-256 of their inputs so that rebuilding the same
bundle from the same sources yields identical bytes.
"""

import hashlib
from typing import Union


def generate_guid(*args: Union[str, bytes, int, float]) -> bytes:
    """
    Generate a 16-byte GUID from the given values.

    Example:
        guid = generate_guid("cab", "my_resources", len(payload), payload)
    """
    hasher = hashlib.sha256()

    for arg in args:
        if isinstance(arg, str):
            hasher.update(arg.encode('utf-8'))
        elif isinstance(arg, (bytes, bytearray)):
            hasher.update(arg)
        else:
            hasher.update(str(arg).encode('utf-8'))

        # Separator so ("ab", "c") and ("a", "bc") differ
        hasher.update(b'\x00')

    return hasher.digest()[:16]


def generate_cab_name(output_name: str, *contents: Union[str, bytes]) -> str:
    """
    Internal entry name for a rebuilt asset file, e.g. "CAB-3f2a...".

    Unity names bundle entries CAB-<32 hex digits>; the digits only need to be
    unique among loaded bundles.
    """
    return "CAB-" + generate_guid("cab", output_name, len(contents), *contents).hex()
