"""
Template Bundle

The UnityFS bundle a build starts from, opened with UnityPy.

Its first SerializedFile entry holds the AssetBundle descriptor and receives
the collected objects; every other entry (.resS and friends) is written back
unchanged. Saving goes through UnityPy's BundleFile.save(), which handles
block layout and compression.
"""

from pathlib import Path
from typing import List, Union

from UnityPy.files import BundleFile, SerializedFile

from utils import BundleError, UnsupportedFormatError, logWarning
from .serialized_file import load_environment

# Compression modes understood by BundleFile.save()
PACKERS = ('none', 'lz4', 'lzma', 'original')


class TemplateBundle:
    """
    Usage:
        template = TemplateBundle.from_path("template.bundle")
        template.file.objects          # descriptor and friends
        template.rename_entry("CAB-...")
        data = template.save("lz4")
    """

    def __init__(self, env, label: str):
        self.env = env
        self.label = label

        bundles = [f for f in env.files.values() if isinstance(f, BundleFile)]
        if not bundles:
            raise UnsupportedFormatError(f"{label}: not an asset bundle")
        self.bundle = bundles[0]

        entries = [(name, f) for name, f in self.bundle.files.items() if isinstance(f, SerializedFile)]
        if not entries:
            raise BundleError(f"{label}: bundle holds no serialized file")
        if len(entries) > 1:
            logWarning(f"{label}: {len(entries)} serialized files, using '{entries[0][0]}'")
        self.entry_name, self.file = entries[0]

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> 'TemplateBundle':
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Template bundle not found: {path}")
        return cls(load_environment(path), str(path))

    @classmethod
    def parse(cls, data: bytes, label: str = "<memory>") -> 'TemplateBundle':
        return cls(load_environment(data, label), label)

    @property
    def entry_names(self) -> List[str]:
        return list(self.bundle.files.keys())

    def rename_entry(self, new_name: str):
        """Give the serialized entry a new name, keeping the entry order."""
        self.bundle.files = {
            (new_name if name == self.entry_name else name): entry for name, entry in self.bundle.files.items()
        }
        self.entry_name = new_name

    def save(self, packer: str = 'none') -> bytes:
        if packer not in PACKERS:
            raise ValueError(f"Unknown bundle compression '{packer}', expected one of {', '.join(PACKERS)}")
        return self.bundle.save(packer=packer)
