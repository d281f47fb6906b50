"""
Exceptions raised by the bundle builder.

Skip-and-continue conditions (unnamed roots, filtered objects, script-backed
references) are not errors and never raise.
"""


class BundleError(Exception):
    """Base class for failures that abort a bundle build."""


class CorruptFileError(BundleError, ValueError):
    """Source data is structurally broken (truncated table, bad file index, ...)."""


class UnsupportedFormatError(BundleError):
    """A Unity file of a kind the build cannot use (a template that is no bundle, ...)."""


class BuildCancelled(BundleError):
    """The cooperative cancel hook asked the build to stop."""
