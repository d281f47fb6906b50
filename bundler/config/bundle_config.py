#!/usr/bin/env python3
"""
Bundle Configuration

Parser for the bundle build INI file.

INI Format:
    [bundle]
    source = resources.assets
    template = template.bundle
    output = ../out/my_resources
    search_paths = ../Managed_Data
    classes = Shader, Material, 28
    name_filters = ^Standard$
                   ^Hidden/.*
    max_depth =
    dangling_references = localize
    compression = lz4
    log = ../build.log

Relative paths resolve against the INI file's directory. classes accepts
class names (see constants.CLASS_NAMES) or numeric ids. name_filters holds
one regular expression per line; leave it out to take every name.
compression is none, lz4, lzma or original (keep the template's).
"""

import configparser
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from constants import CLASS_NAMES, class_name
from parsers import PACKERS
from remapping import DanglingPolicy
from utils import log

SECTION = 'bundle'


@dataclass
class BundleConfig:
    """Settings for one bundle build."""
    source: Path
    template: Path
    output: Path
    classes: List[int]
    name_filters: List[str] = field(default_factory=list)
    search_paths: List[Path] = field(default_factory=list)
    max_depth: Optional[int] = None
    dangling_references: DanglingPolicy = DanglingPolicy.LOCALIZE
    compression: str = 'none'
    log_path: Optional[Path] = None

    def __post_init__(self):
        """Validate settings"""
        if not self.classes:
            raise ValueError("No classes selected")

        if self.max_depth is not None and self.max_depth < 0:
            raise ValueError(f"max_depth {self.max_depth} must not be negative")

        for pattern in self.name_filters:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Bad name filter '{pattern}': {e}") from e

        if self.compression not in PACKERS:
            raise ValueError(f"compression must be one of {', '.join(PACKERS)}, got '{self.compression}'")

    @property
    def output_name(self) -> str:
        """Bundle name written into the descriptor (file name of the output)."""
        return self.output.name

    @classmethod
    def load(cls, config_path: Union[str, Path]) -> 'BundleConfig':
        """
        Load and validate a bundle INI file.

        Raises:
            FileNotFoundError: config file missing
            ValueError: missing or malformed settings
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        parser = configparser.ConfigParser(interpolation=None)
        parser.read(config_path, encoding='utf-8')

        if not parser.has_section(SECTION):
            raise ValueError(f"{config_path}: missing [{SECTION}] section")
        data = parser[SECTION]
        base = config_path.parent

        def required_path(key: str) -> Path:
            value = data.get(key, '').strip()
            if not value:
                raise ValueError(f"{config_path}: missing '{key}' field")
            return base / value

        return cls(
            source=required_path('source'),
            template=required_path('template'),
            output=required_path('output'),
            classes=parse_classes(data.get('classes', '')),
            name_filters=_lines(data.get('name_filters', '')),
            search_paths=[base / p for p in _list(data.get('search_paths', ''))],
            max_depth=_optional_int(data.get('max_depth', ''), 'max_depth'),
            dangling_references=_policy(data.get('dangling_references', '')),
            compression=data.get('compression', 'none').strip().lower() or 'none',
            log_path=base / data['log'].strip() if data.get('log', '').strip() else None,
        )

    def print_summary(self):
        log(f"Source:    {self.source}")
        log(f"Template:  {self.template}")
        log(f"Output:    {self.output}")
        log(f"Classes:   {', '.join(class_name(c) for c in self.classes)}")
        log(f"Filters:   {', '.join(self.name_filters) if self.name_filters else '(all names)'}")
        log(f"Max depth: {'unbounded' if self.max_depth is None else self.max_depth}")
        log(f"Dangling references: {self.dangling_references.value}")
        log(f"Compression: {self.compression}")


def parse_classes(value: str) -> List[int]:
    """'Shader, Material, 28' -> [48, 21, 28]"""
    classes = []
    for item in _list(value):
        if item.lstrip('-').isdigit():
            classes.append(int(item))
        elif item in CLASS_NAMES:
            classes.append(CLASS_NAMES[item])
        else:
            raise ValueError(f"Unknown class '{item}'")
    return classes


def _lines(value: str) -> List[str]:
    return [line.strip() for line in value.splitlines() if line.strip()]


def _list(value: str) -> List[str]:
    return [item.strip() for item in re.split(r'[,\n]', value) if item.strip()]


def _optional_int(value: str, key: str) -> Optional[int]:
    value = value.strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"'{key}' must be an integer, got '{value}'") from None


def _policy(value: str) -> DanglingPolicy:
    value = value.strip().lower()
    if not value:
        return DanglingPolicy.LOCALIZE
    try:
        return DanglingPolicy(value)
    except ValueError:
        choices = ', '.join(p.value for p in DanglingPolicy)
        raise ValueError(f"dangling_references must be one of {choices}, got '{value}'") from None
