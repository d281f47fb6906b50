"""
Asset File Loading

Opens Unity asset files with UnityPy and finds the SerializedFiles inside.

A plain .assets file loads as one SerializedFile; a bundle holds its
SerializedFiles as entries next to raw resource entries (.resS, .resource).
Parsing of every format version and compression mode is UnityPy's.
"""

from pathlib import Path
from typing import List, Union

import UnityPy
from UnityPy.files import SerializedFile

from utils import CorruptFileError


def load_environment(source: Union[str, Path, bytes], label: str = None):
    """
    UnityPy.load() with read failures reported as CorruptFileError.

    Args:
        source: File path or file contents
        label: Name for error messages (defaults to the path)
    """
    label = label or str(source)
    if isinstance(source, Path):
        source = str(source)
    try:
        return UnityPy.load(source)
    except Exception as e:
        raise CorruptFileError(f"{label}: cannot be read as a Unity file ({e})") from e


def serialized_files(env) -> List[SerializedFile]:
    """Every SerializedFile loaded in env, bundle entries included, in load order."""
    found = []
    pending = list(reversed(list(env.files.values())))
    while pending:
        current = pending.pop()
        if isinstance(current, SerializedFile):
            found.append(current)
        elif isinstance(getattr(current, 'files', None), dict):
            pending.extend(reversed(list(current.files.values())))
    return found


def open_serialized_file(path: Union[str, Path]) -> SerializedFile:
    """
    Load one .assets file.

    Raises:
        FileNotFoundError: path does not exist
        CorruptFileError: the file holds no SerializedFile
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Asset file not found: {path}")

    files = serialized_files(load_environment(path))
    if not files:
        raise CorruptFileError(f"{path}: not a Unity asset file")
    return files[0]
