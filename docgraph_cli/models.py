"""Core data models shared by the extractor, graph builder, and pipeline stages."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import StageTransitionError


class Scope(str, Enum):
    """Granularity of a documentation request."""

    FILE = "file"
    MODULE = "module"
    REPOSITORY = "repository"


@dataclass
class SourceFile:
    path: str
    language: str
    content: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SourceFile":
        return cls(
            path=str(data["path"]),
            language=str(data.get("language") or ""),
            content=str(data.get("content") or ""),
        )


# ===================================================================
# Structural records
# ===================================================================

@dataclass(frozen=True)
class Parameter:
    name: str
    type: Optional[str] = None
    optional: bool = False
    default_value: Optional[str] = None


@dataclass(frozen=True)
class FunctionRecord:
    name: str
    parameters: List[Parameter]
    is_async: bool
    is_exported: bool
    start_line: int
    end_line: int

    def signature(self) -> str:
        params = ", ".join(
            p.name + ("?" if p.optional else "") + (f": {p.type}" if p.type else "")
            for p in self.parameters
        )
        prefix = "async " if self.is_async else ""
        return f"{prefix}{self.name}({params})"


@dataclass(frozen=True)
class ClassRecord:
    name: str
    is_exported: bool
    start_line: int
    end_line: int
    extends: Optional[str] = None
    implements: Optional[List[str]] = None
    # Member extraction is not performed; both stay empty.
    methods: List[str] = field(default_factory=list)
    properties: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ImportRecord:
    source_module: str
    imported_names: List[str]
    is_type_only: bool = False


@dataclass(frozen=True)
class ExportRecord:
    name: str
    kind: str  # function | class | variable | default


@dataclass
class ParsedFile:
    path: str
    language: str
    functions: List[FunctionRecord] = field(default_factory=list)
    classes: List[ClassRecord] = field(default_factory=list)
    imports: List[ImportRecord] = field(default_factory=list)
    exports: List[ExportRecord] = field(default_factory=list)


@dataclass(frozen=True)
class Dependency:
    from_path: str
    to: str
    kind: str  # import | call | extends | implements
    relationship: str = ""


@dataclass
class ModuleRecord:
    name: str
    files: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    entry_point: Optional[str] = None


@dataclass
class StructuralModel:
    files: List[ParsedFile] = field(default_factory=list)
    dependencies: List[Dependency] = field(default_factory=list)
    modules: List[ModuleRecord] = field(default_factory=list)

    def get_file(self, path: str) -> Optional[ParsedFile]:
        for parsed in self.files:
            if parsed.path == path:
                return parsed
        return None

    @property
    def function_count(self) -> int:
        return sum(len(f.functions) for f in self.files)

    @property
    def class_count(self) -> int:
        return sum(len(f.classes) for f in self.files)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ===================================================================
# Graph
# ===================================================================

@dataclass
class GraphNode:
    id: str
    kind: str  # file | function | class | module
    name: str
    path: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GraphEdge:
    source: str
    target: str
    kind: str  # contains | import | call | extends | implements
    weight: Optional[int] = None


@dataclass
class DependencyGraph:
    """Directed graph over files and their declarations.

    Lookup indexes are computed once at construction; treat the node and edge
    lists as read-only afterwards.
    """

    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._nodes_by_id: Dict[str, GraphNode] = {}
        for node in self.nodes:
            self._nodes_by_id.setdefault(node.id, node)
        self._outgoing: Dict[str, List[GraphEdge]] = {}
        self._incoming: Dict[str, List[GraphEdge]] = {}
        for edge in self.edges:
            self._outgoing.setdefault(edge.source, []).append(edge)
            self._incoming.setdefault(edge.target, []).append(edge)

    def node(self, node_id: str) -> Optional[GraphNode]:
        return self._nodes_by_id.get(node_id)

    def is_file(self, node_id: str) -> bool:
        node = self._nodes_by_id.get(node_id)
        return node is not None and node.kind == "file"

    def file_nodes(self) -> List[GraphNode]:
        return [n for n in self.nodes if n.kind == "file"]

    def outgoing(self, node_id: str, kind: Optional[str] = None) -> List[GraphEdge]:
        edges = self._outgoing.get(node_id, [])
        if kind is None:
            return list(edges)
        return [e for e in edges if e.kind == kind]

    def incoming(self, node_id: str, kind: Optional[str] = None) -> List[GraphEdge]:
        edges = self._incoming.get(node_id, [])
        if kind is None:
            return list(edges)
        return [e for e in edges if e.kind == kind]

    def neighbors(self, node_id: str) -> List[str]:
        """Ids adjacent to *node_id* in either direction, in edge order."""
        seen: Dict[str, None] = {}
        for edge in self._outgoing.get(node_id, []):
            seen.setdefault(edge.target, None)
        for edge in self._incoming.get(node_id, []):
            seen.setdefault(edge.source, None)
        seen.pop(node_id, None)
        return list(seen)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [asdict(n) for n in self.nodes],
            "edges": [asdict(e) for e in self.edges],
        }


@dataclass
class Insights:
    key_components: List[str] = field(default_factory=list)
    modules: List[str] = field(default_factory=list)
    critical_paths: List[str] = field(default_factory=list)


# ===================================================================
# Pipeline state and I/O
# ===================================================================

class StageStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


_ALLOWED_TRANSITIONS: Dict[StageStatus, frozenset] = {
    StageStatus.IDLE: frozenset({StageStatus.PROCESSING, StageStatus.ERROR}),
    StageStatus.PROCESSING: frozenset(
        {StageStatus.PROCESSING, StageStatus.COMPLETED, StageStatus.ERROR}
    ),
    StageStatus.COMPLETED: frozenset(),
    StageStatus.ERROR: frozenset(),
}


@dataclass
class StageState:
    """Lifecycle of one stage within one request.

    Status only moves forward (idle -> processing -> completed | error);
    ``reset()`` is the only way back to idle.
    """

    id: str
    status: StageStatus = StageStatus.IDLE
    current_task: Optional[str] = None
    error: Optional[str] = None

    def _move(self, status: StageStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise StageTransitionError(
                f"{self.id}: cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    def start(self, task: Optional[str] = None) -> None:
        self._move(StageStatus.PROCESSING)
        self.current_task = task

    def update_task(self, task: str) -> None:
        self._move(StageStatus.PROCESSING)
        self.current_task = task

    def complete(self) -> None:
        self._move(StageStatus.COMPLETED)
        self.current_task = None

    def fail(self, message: str) -> None:
        self._move(StageStatus.ERROR)
        self.error = message

    def reset(self) -> None:
        self.status = StageStatus.IDLE
        self.current_task = None
        self.error = None

    def snapshot(self) -> "StageState":
        return StageState(self.id, self.status, self.current_task, self.error)


@dataclass(frozen=True)
class PipelineContext:
    request_id: str
    repository_id: str
    user_id: str
    scope: Scope = Scope.REPOSITORY
    target: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "scope", Scope(self.scope))


@dataclass
class ContextChunk:
    path: str
    content: str
    language: str


@dataclass
class DocumentationMetadata:
    files_analyzed: List[str]
    functions_documented: int
    classes_documented: int
    generation_time: int  # milliseconds
    modules_documented: int = 0


@dataclass
class DocumentationResult:
    documentation: str
    metadata: DocumentationMetadata

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def coerce_source_files(files: Iterable[Any]) -> List[SourceFile]:
    """Accept ``SourceFile`` objects or ``{path, content, language}`` mappings."""
    result: List[SourceFile] = []
    for item in files:
        if isinstance(item, SourceFile):
            result.append(item)
        else:
            result.append(SourceFile.from_mapping(item))
    return result
