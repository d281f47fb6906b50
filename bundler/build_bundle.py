#!/usr/bin/env python3
"""
Build Bundle

Packs a selection of objects from an asset file, together with everything
they reference, into a copy of a template asset bundle.

Pipeline:
1. Load the bundle configuration (bundle.ini) and the template bundle
2. Open the source asset file and every file it depends on
3. Collect the closure of the selected root objects
4. Localize references and rebuild the AssetBundle descriptor
5. Write the new bundle next to the output path and swap it in

Usage:
    python build_bundle.py --config ../bundle.ini --output ../out/my_resources
"""

import sys
import argparse
import time
from pathlib import Path
from typing import Optional

from config import BundleConfig
from graph import (
    AssetsFileHandle,
    DependencyWalker,
    RootSelector,
    format_closure_report,
    open_with_dependencies,
)
from parsers import PACKERS, ClassSchemaRegistry, TemplateBundle
from serialization import ArchiveWriter, ContainerBuilder, commit
from utils import BundleError, log, logError, logWarning, init_logging, print_summary


class BundleBuilder:
    """
    Orchestrates one bundle build.

    Usage:
        builder = BundleBuilder(BundleConfig.load("bundle.ini"))
        builder.build()
    """

    def __init__(self, config: BundleConfig, cancel=None):
        self.config = config
        self.cancel = cancel
        self.schemas: Optional[ClassSchemaRegistry] = None
        self.entry_name: Optional[str] = None

    def build(self) -> Path:
        """
        Run the whole pipeline.

        Returns:
            Path of the written bundle
        """
        log("=" * 70)
        log("BUNDLE BUILDER")
        log("=" * 70)
        log()

        self.config.print_summary()
        log()

        start_time = time.time()

        # Step 1: Inputs
        log("\n" + "=" * 70)
        log("STEP 1: Loading Inputs")
        log("=" * 70)

        self.schemas = ClassSchemaRegistry()

        source = open_with_dependencies(self.config.source, self.config.search_paths)
        log(f"  Source: {source.path} ({len(source.file.objects):,} objects, "
            f"{len(source.file.externals)} dependencies)")

        template = TemplateBundle.from_path(self.config.template)
        bundle_handle = AssetsFileHandle(template.entry_name, template.file)
        log(f"  Template: {self.config.template} ({len(template.entry_names)} entries, "
            f"serialized file '{bundle_handle.path}')")

        # Step 2: Closure
        log("\n" + "=" * 70)
        log("STEP 2: Collecting Dependencies")
        log("=" * 70)

        walker = DependencyWalker(self.schemas, progress=self._progress, cancel=self.cancel)
        selector = RootSelector(self.config.classes, self.config.name_filters)
        closure = walker.collect(source, selector, self.config.max_depth)

        if not closure:
            logWarning("No objects matched the selection, the bundle will only hold its descriptor")

        for context in format_closure_report(closure):
            log(context, end="")

        # Step 3: Container and patches
        log("\n" + "=" * 70)
        log("STEP 3: Building Container")
        log("=" * 70)

        builder = ContainerBuilder(self.schemas, self.config.dangling_references, cancel=self.cancel)
        result = builder.build(closure, bundle_handle, self.config.output_name)

        # Step 4: Output
        log("\n" + "=" * 70)
        log("STEP 4: Writing Output")
        log("=" * 70)

        writer = ArchiveWriter(template, self.config.compression, cancel=self.cancel)
        data = writer.write(result.patches, self.config.output_name, result.externals)
        self.entry_name = writer.entry_name
        commit(data, self.config.output)

        elapsed = time.time() - start_time
        log("\n" + "=" * 70)
        log(f"BUILD COMPLETE in {elapsed:.1f} seconds")
        log(f"  {len(result.container_entries)} assets in {self.config.output}")
        log("=" * 70)

        print_summary()
        return self.config.output

    @staticmethod
    def _progress(message: str, fraction: float):
        log(f"  {fraction * 100:5.1f}% {message}")


def main():
    parser = argparse.ArgumentParser(
        description='Pack assets and their dependencies into an asset bundle',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Example:
    python build_bundle.py --config ../bundle.ini

    # Different destination, only direct dependencies:
    python build_bundle.py --config ../bundle.ini --output ../out/shaders --max-depth 1

Note: source, template and the root selection are configured in bundle.ini:
    [bundle]
    source = resources.assets
    template = template.bundle
    output = ../out/my_resources
    classes = Shader
    name_filters = ^Standard$
        """
    )

    parser.add_argument('--config', default='../bundle.ini',
                        help='Path to bundle.ini configuration file')
    parser.add_argument('--output', default=None,
                        help='Output bundle path (overrides the config file)')
    parser.add_argument('--max-depth', type=int, default=None,
                        help='Deepest dependency level to collect (overrides the config file)')
    parser.add_argument('--compression', choices=PACKERS, default=None,
                        help='Bundle compression (overrides the config file)')
    parser.add_argument('--log', default=None,
                        help='Build log path (default: build.log in the project root)')
    args = parser.parse_args()

    try:
        config = BundleConfig.load(args.config)
    except (OSError, ValueError) as e:
        init_logging(Path(args.log) if args.log else None)
        logError(f"{e}")
        sys.exit(1)

    log_path = args.log or config.log_path
    init_logging(Path(log_path) if log_path else None)

    if args.output:
        config.output = Path(args.output)
    if args.max_depth is not None:
        if args.max_depth < 0:
            logError(f"--max-depth {args.max_depth} must not be negative")
            sys.exit(1)
        config.max_depth = args.max_depth
    if args.compression:
        config.compression = args.compression

    try:
        BundleBuilder(config).build()
    except (BundleError, OSError, ValueError, KeyError) as e:
        logError(f"{type(e).__name__}: {e}")
        print_summary()
        sys.exit(1)


if __name__ == '__main__':
    main()
