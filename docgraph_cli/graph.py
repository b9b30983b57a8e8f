"""Dependency graph construction and traversal."""

from __future__ import annotations

import posixpath
from collections import deque
from typing import Dict, List, Optional, Set

from .models import DependencyGraph, GraphEdge, GraphNode, StructuralModel

_ES_EXTENSIONS = (".ts", ".tsx", ".mts", ".js", ".jsx", ".mjs", ".cjs")


def node_id_for(file_path: str, name: str) -> str:
    return f"{file_path}::{name}"


# ===================================================================
# Specifier resolution
# ===================================================================

def resolve_specifier(from_path: str, specifier: str, known_paths: Set[str]) -> Optional[str]:
    """Map an import specifier to one of *known_paths*, if it names one.

    Relative ECMAScript specifiers (``./x``, ``../x``) are tried with the
    usual extensions and ``index`` files; Python modules (``pkg.mod``,
    ``.sibling``) are tried as ``.py`` files and packages. Anything else,
    including bare package names, stays unresolved.
    """
    if specifier in known_paths:
        return specifier

    if from_path.endswith(".py"):
        return _resolve_python(from_path, specifier, known_paths)

    if not (specifier.startswith("./") or specifier.startswith("../") or specifier in (".", "..")):
        return None

    base = posixpath.normpath(posixpath.join(posixpath.dirname(from_path), specifier))
    stem, ext = posixpath.splitext(base)
    candidates = [base]
    candidates.extend(base + e for e in _ES_EXTENSIONS)
    if ext in _ES_EXTENSIONS:
        # TypeScript ESM imports name the emitted .js file
        candidates.extend(stem + e for e in _ES_EXTENSIONS)
    candidates.extend(posixpath.join(base, "index" + e) for e in _ES_EXTENSIONS)
    for candidate in candidates:
        if candidate in known_paths:
            return candidate
    return None


def _resolve_python(from_path: str, specifier: str, known_paths: Set[str]) -> Optional[str]:
    dots = len(specifier) - len(specifier.lstrip("."))
    rest = specifier[dots:].replace(".", "/")

    if dots:
        package = posixpath.dirname(from_path)
        for _ in range(dots - 1):
            package = posixpath.dirname(package)
        base = posixpath.join(package, rest) if rest else package
        candidates = [base + ".py", posixpath.join(base, "__init__.py")] if rest else [
            posixpath.join(base, "__init__.py")
        ]
        for candidate in candidates:
            if candidate.lstrip("/") in known_paths:
                return candidate.lstrip("/")
        return None

    if not rest:
        return None
    candidates = [rest + ".py", rest + "/__init__.py"]
    for candidate in candidates:
        if candidate in known_paths:
            return candidate
    # src-layout and similar: accept a unique path suffix match
    matches = [
        path for path in sorted(known_paths)
        if any(path.endswith("/" + c) for c in candidates)
    ]
    return matches[0] if len(matches) == 1 else None


# ===================================================================
# Graph builder
# ===================================================================

class DependencyGraphBuilder:
    """Builds and queries dependency graphs from a ``StructuralModel``."""

    def build_graph(self, structure: StructuralModel) -> DependencyGraph:
        nodes: List[GraphNode] = []
        edges: List[GraphEdge] = []
        known_paths = {f.path for f in structure.files}

        classes_by_name: Dict[str, Dict[str, None]] = {}
        for parsed in structure.files:
            for cls in parsed.classes:
                classes_by_name.setdefault(cls.name, {})[node_id_for(parsed.path, cls.name)] = None

        def class_target(name: str) -> str:
            candidates = list(classes_by_name.get(name, {}))
            return candidates[0] if len(candidates) == 1 else name

        for parsed in structure.files:
            nodes.append(GraphNode(
                id=parsed.path,
                kind="file",
                name=posixpath.basename(parsed.path) or parsed.path,
                path=parsed.path,
                metadata={
                    "language": parsed.language,
                    "function_count": len(parsed.functions),
                    "class_count": len(parsed.classes),
                },
            ))

            # nested declarations can repeat a name; the first one owns the id
            declared: Set[str] = set()

            for func in parsed.functions:
                func_id = node_id_for(parsed.path, func.name)
                if func_id in declared:
                    continue
                declared.add(func_id)
                nodes.append(GraphNode(
                    id=func_id,
                    kind="function",
                    name=func.name,
                    path=parsed.path,
                    metadata={
                        "is_exported": func.is_exported,
                        "is_async": func.is_async,
                        "parameter_count": len(func.parameters),
                    },
                ))
                edges.append(GraphEdge(source=parsed.path, target=func_id, kind="contains"))

            for cls in parsed.classes:
                class_id = node_id_for(parsed.path, cls.name)
                if class_id in declared:
                    continue
                declared.add(class_id)
                nodes.append(GraphNode(
                    id=class_id,
                    kind="class",
                    name=cls.name,
                    path=parsed.path,
                    metadata={
                        "is_exported": cls.is_exported,
                        "method_count": len(cls.methods),
                        "extends": cls.extends,
                    },
                ))
                edges.append(GraphEdge(source=parsed.path, target=class_id, kind="contains"))
                if cls.extends:
                    edges.append(GraphEdge(source=class_id, target=class_target(cls.extends), kind="extends"))
                for interface in cls.implements or []:
                    edges.append(GraphEdge(source=class_id, target=class_target(interface), kind="implements"))

        for dep in structure.dependencies:
            target = dep.to
            if dep.kind == "import":
                target = resolve_specifier(dep.from_path, dep.to, known_paths) or dep.to
            edges.append(GraphEdge(source=dep.from_path, target=target, kind=dep.kind, weight=1))

        return DependencyGraph(nodes=nodes, edges=edges)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_related_files(self, graph: DependencyGraph, file_path: str, max_depth: int = 2) -> List[str]:
        """Files within *max_depth* file hops of *file_path*, edges taken undirected.

        Declarations of the current file are walked through without costing
        a hop; reaching another file's declaration lands on that file. Only
        file paths are returned and the seed file is excluded.
        """
        related: List[str] = []
        visited = {file_path}
        frontier = [file_path]

        for _ in range(max_depth):
            next_frontier: List[str] = []
            for current in frontier:
                for neighbor in self._adjacent_files(graph, current):
                    if neighbor in visited:
                        continue
                    visited.add(neighbor)
                    related.append(neighbor)
                    next_frontier.append(neighbor)
            if not next_frontier:
                break
            frontier = next_frontier

        return related

    def _adjacent_files(self, graph: DependencyGraph, file_id: str) -> List[str]:
        found: Dict[str, None] = {}
        seen = {file_id}
        queue = deque([file_id])
        while queue:
            current = queue.popleft()
            for neighbor_id in graph.neighbors(current):
                if neighbor_id in seen:
                    continue
                seen.add(neighbor_id)
                node = graph.node(neighbor_id)
                if node is None:
                    continue
                if node.kind == "file":
                    found.setdefault(neighbor_id, None)
                elif node.path == file_id:
                    queue.append(neighbor_id)
                elif node.path and graph.is_file(node.path):
                    # another file's declaration: one hop, not expanded further
                    found.setdefault(node.path, None)
        found.pop(file_id, None)
        return list(found)

    def get_module_files(self, graph: DependencyGraph, entry_file: str) -> List[str]:
        """Entry file plus every file reachable through outgoing ``import`` edges."""
        module_files: List[str] = []
        visited: Set[str] = set()
        stack = [entry_file]

        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            module_files.append(current)
            targets = [
                edge.target for edge in graph.outgoing(current, kind="import")
                if graph.is_file(edge.target)
            ]
            stack.extend(reversed(targets))

        return module_files
