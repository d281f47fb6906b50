#!/usr/bin/env python3
"""
Config module for bundle build settings.
"""

from .bundle_config import BundleConfig, parse_classes

__all__ = ['BundleConfig', 'parse_classes']
