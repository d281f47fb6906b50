"""
Remapping Package

Makes cross-file references local so collected objects can live in a single
bundle file.
"""

from .reference_remapper import (
    DanglingPolicy,
    localize,
    iter_references,
    count_references,
)
