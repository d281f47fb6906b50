#!/usr/bin/env python3
"""
Dependency Graph Walker

Computes the reference closure of a root selection: every object reachable
from the roots through reference (PPtr) fields, in pure depth-first order.

Traversal rules per field kind:
- SCALAR / SCALAR_ARRAY: no references, ignored
- COMPOSITE: expanded in place, same depth as the owning object
- REFERENCE: resolved to a GlobalIdentity; null (path id 0) and already
  visited targets are skipped, otherwise the target becomes a member at
  owner depth + 1 and is expanded before the remaining siblings
- REFERENCE_ARRAY: each element handled like a single reference

Script-backed objects (MonoBehaviour) and classes without a schema are never
collected and their references are not followed.

With max_depth set, members at max_depth are collected but not expanded. A
member reached again through a shorter path is expanded again from that
depth, so the result does not depend on which path the walk took first.

The order is load-bearing: the build report groups members under the
preceding depth-0 root.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Pattern, Sequence, Set, Tuple

from UnityPy.files import ObjectReader

from constants import CLASS_MONO_BEHAVIOUR, CLASS_SHADER, SCRIPT_INDEX_NONE, class_name
from parsers import ClassSchemaRegistry, Field, FieldKind
from utils import BuildCancelled, log, logDebug, logWarning
from .identity import AssetsFileHandle, GlobalIdentity, resolve

ProgressCallback = Callable[[str, float], None]
CancelCallback = Callable[[], bool]


@dataclass(frozen=True, eq=False)
class ClosureMember:
    """One collected object. Roots have depth 0 and no via_field."""
    handle: AssetsFileHandle
    obj: ObjectReader = field(repr=False)
    name: str
    file_id: int  # as found at the point of reference
    path_id: int
    depth: int
    via_field: Optional[Field] = field(default=None, repr=False)
    fields: Optional[Field] = field(default=None, repr=False)

    @property
    def identity(self) -> GlobalIdentity:
        return self.handle.identity(self.obj.path_id)

    @property
    def class_id(self) -> int:
        return self.obj.class_id

    @property
    def script_type_index(self) -> int:
        serialized_type = getattr(self.obj, 'serialized_type', None)
        index = serialized_type.script_type_index if serialized_type is not None else -1
        return index if index >= 0 else SCRIPT_INDEX_NONE


@dataclass
class RootSelector:
    """
    Which objects seed the closure.

    An object is a root when its class id is in class_ids and its name matches
    at least one pattern (re.search). No patterns matches every name.
    """
    class_ids: Sequence[int]
    name_patterns: Sequence[str] = ()

    def __post_init__(self):
        self._compiled: List[Pattern] = [re.compile(p) for p in self.name_patterns]

    def matches_name(self, name: str) -> bool:
        if not self._compiled:
            return True
        return any(p.search(name) for p in self._compiled)


@dataclass
class _Frame:
    """Fields still to visit inside one member (or one of its composites)."""
    handle: AssetsFileHandle
    fields: Iterator[Field]
    depth: int


def display_name(obj: ObjectReader, fields: Field) -> Optional[str]:
    """
    Name shown in the container table: Shader names live in m_ParsedForm,
    everything else uses the generic m_Name record. None when unreadable.
    """
    if obj.class_id == CLASS_SHADER:
        parsed_name = fields.find("m_ParsedForm/m_Name")
        if parsed_name is not None and parsed_name.kind == FieldKind.SCALAR:
            return str(parsed_name.value)
    return AssetsFileHandle.read_name(fields)


class DependencyWalker:
    """
    Collects closures for one build run. The visited set lives on the
    instance and is shared by every root of a collect() call.

    Usage:
        walker = DependencyWalker(schemas)
        closure = walker.collect(source, RootSelector([48], [r"^Standard$"]))
    """

    def __init__(self, schemas: ClassSchemaRegistry,
                 progress: Optional[ProgressCallback] = None,
                 cancel: Optional[CancelCallback] = None):
        self.schemas = schemas
        self.progress = progress
        self.cancel = cancel
        self.visited: Set[GlobalIdentity] = set()
        self.closure: List[ClosureMember] = []
        self.members: Dict[GlobalIdentity, ClosureMember] = {}
        self.best_depth: Dict[GlobalIdentity, int] = {}
        self.excluded_count = 0
        self.max_depth: Optional[int] = None

    def collect(self, source: AssetsFileHandle, selector: RootSelector,
                max_depth: Optional[int] = None) -> List[ClosureMember]:
        """
        Compute the ordered closure of every root in source matching selector.

        Args:
            source: File whose objects are root candidates
            selector: Class ids and name patterns for roots
            max_depth: Deepest member depth to collect; None for unbounded

        Raises:
            CorruptFileError: a reference names a file id outside its
                file's dependency table
            BuildCancelled: the cancel hook returned True
        """
        self.visited = set()
        self.closure = []
        self.members = {}
        self.best_depth = {}
        self.excluded_count = 0
        self.max_depth = max_depth

        candidates = self._root_candidates(source, selector)
        for index, (obj, name, fields) in enumerate(candidates):
            self._check_cancel()
            if self.progress:
                self.progress(f"[Collecting] ({class_name(obj.class_id)}) {name}", index / max(1, len(candidates)))

            identity = source.identity(obj.path_id)
            if identity in self.visited:
                logDebug(f"Root '{name}' already collected as a dependency")
                frame = self._revisit(identity, 0)
                if frame is not None:
                    self._expand(frame)
                continue
            self.visited.add(identity)

            root = ClosureMember(handle=source, obj=obj, name=name, file_id=0,
                                 path_id=obj.path_id, depth=0, fields=fields)
            self._add(root)
            if self._may_expand(0):
                self._expand(_Frame(source, iter(fields.children), 0))

        log(f"  Collected {len(self.closure)} objects "
            f"({sum(1 for m in self.closure if m.depth == 0)} roots, {self.excluded_count} excluded)")
        return self.closure

    def _root_candidates(self, source: AssetsFileHandle,
                         selector: RootSelector) -> List[Tuple[ObjectReader, str, Field]]:
        candidates = []
        for class_id in selector.class_ids:
            if class_id == CLASS_MONO_BEHAVIOUR:
                logWarning("MonoBehaviour objects cannot be bundled, ignoring that class in the selection")
                continue

            missing_schema = 0
            for obj in source.objects_of_type(class_id):
                if not self.schemas.has(obj):
                    missing_schema += 1
                    continue
                fields = source.read_fields(obj, self.schemas)
                name = display_name(obj, fields)
                if name is None:
                    continue
                if not selector.matches_name(name):
                    continue
                candidates.append((obj, name, fields))

            if missing_schema:
                logWarning(f"No schema for class {class_name(class_id)}, "
                           f"{missing_schema} of its objects cannot be selected")
        return candidates

    def _add(self, member: ClosureMember):
        self.closure.append(member)
        self.members[member.identity] = member
        self.best_depth[member.identity] = member.depth

    def _expand(self, first: _Frame):
        """Depth-first expansion using an explicit frame stack."""
        stack = [first]
        while stack:
            frame = stack[-1]
            current = next(frame.fields, None)
            if current is None:
                stack.pop()
                continue

            kind = current.kind
            if kind in (FieldKind.SCALAR, FieldKind.SCALAR_ARRAY):
                continue

            if kind in (FieldKind.COMPOSITE, FieldKind.REFERENCE_ARRAY):
                stack.append(_Frame(frame.handle, iter(current.children), frame.depth))
                continue

            found = self._visit_reference(frame, current)
            if found is not None:
                stack.append(found)

    def _may_expand(self, depth: int) -> bool:
        return self.max_depth is None or depth < self.max_depth

    def _revisit(self, identity: GlobalIdentity, depth: int) -> Optional[_Frame]:
        """
        Frame to expand an already collected member again, when it is now
        reached at a shallower depth that is still below max_depth.
        """
        if self.max_depth is None:
            return None
        member = self.members.get(identity)
        if member is None or depth >= self.best_depth[identity]:
            return None
        self.best_depth[identity] = depth
        if not self._may_expand(depth):
            return None
        logDebug(f"Expanding '{member.name}' again from depth {depth}")
        return _Frame(member.handle, iter(member.fields.children), depth)

    def _visit_reference(self, frame: _Frame, pointer: Field) -> Optional[_Frame]:
        path_id = pointer.path_id
        if path_id == 0:
            return None

        file_id = pointer.file_id
        target = resolve(frame.handle, file_id)
        identity = target.identity(path_id)
        if identity in self.visited:
            return self._revisit(identity, frame.depth + 1)
        self.visited.add(identity)

        self._check_cancel()

        if not target.has_object(path_id):
            logWarning(f"{target.path}: reference to missing object {path_id} ({pointer.node.type}), skipped")
            return None

        obj = target.get_object(path_id)
        if obj.class_id == CLASS_MONO_BEHAVIOUR:
            self.excluded_count += 1
            logDebug(f"Excluded script-backed object {path_id} in {target.path}")
            return None
        if not self.schemas.has(obj):
            self.excluded_count += 1
            logWarning(f"No schema for class {class_name(obj.class_id)}, object {path_id} in {target.path} left out")
            return None

        fields = target.read_fields(obj, self.schemas)
        name = display_name(obj, fields) or ""

        member = ClosureMember(handle=target, obj=obj, name=name, file_id=file_id,
                               path_id=path_id, depth=frame.depth + 1,
                               via_field=pointer, fields=fields)
        self._add(member)
        logDebug(f"{'  ' * member.depth}+ ({class_name(obj.class_id)}) '{name}' path id {path_id}")

        if not self._may_expand(member.depth):
            return None
        return _Frame(target, iter(fields.children), member.depth)

    def _check_cancel(self):
        if self.cancel is not None and self.cancel():
            raise BuildCancelled("Build cancelled while collecting assets")


def format_closure_report(closure: Sequence[ClosureMember]) -> List[str]:
    """
    One text block per root listing everything collected under it:

        Standard
        * (Shader) Name: "Standard"
          * (Texture2D) Name: "noise"
    """
    contexts = []
    context = ""
    for member in closure:
        if member.depth == 0:
            if context:
                contexts.append(context)
            context = f"{member.name}\n"
        context += f"{'  ' * member.depth}* ({class_name(member.class_id)}) Name: \"{member.name}\"\n"
    if context:
        contexts.append(context)
    return contexts
