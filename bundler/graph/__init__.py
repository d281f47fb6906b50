"""
Object Graph Package

Resolves references to global identities and walks the reference graph to
collect everything a root selection needs.
"""

from .identity import (
    GlobalIdentity,
    AssetsFileHandle,
    resolve,
    to_identity,
    open_with_dependencies,
)
from .walker import (
    ClosureMember,
    RootSelector,
    DependencyWalker,
    display_name,
    format_closure_report,
)
