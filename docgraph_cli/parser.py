"""Lightweight lexical extraction of code structure.

No AST is built: each supported language has an ordered set of regular
expression passes that pick out functions, classes, imports and exports.
The scan is lossy by nature (multi-line signatures, nested generics and
decorators may be missed) but it never raises on unrecognized syntax;
whatever does not match is simply absent from the result.
"""

from __future__ import annotations

import logging
import posixpath
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .config import SUPPORTED_EXTENSIONS
from .models import (
    ClassRecord,
    Dependency,
    ExportRecord,
    FunctionRecord,
    ImportRecord,
    ModuleRecord,
    Parameter,
    ParsedFile,
    SourceFile,
    StructuralModel,
    coerce_source_files,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".mts": "typescript",
    ".tsx": "tsx",
}

LANGUAGE_ALIASES: Dict[str, str] = {
    "js": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "py": "python",
}

ECMASCRIPT_LANGUAGES: Set[str] = {"javascript", "typescript", "tsx"}

SKIP_DIRS: Set[str] = {
    ".venv", "venv", "__pycache__", "node_modules", ".git",
    "site-packages", ".tox", ".pytest_cache", "build", "dist",
    ".mypy_cache", ".ruff_cache", "htmlcov", ".eggs", ".next",
    "coverage", ".docgraph",
}

# Block boundaries are not computed; end lines are start + a fixed span.
FUNCTION_LINE_SPAN = 10
CLASS_LINE_SPAN = 20

_IDENT = r"[A-Za-z_$][\w$]*"

# ===================================================================
# ECMAScript patterns
# ===================================================================

_ES_FUNCTION_RE = re.compile(
    r"\bfunction\b\s*\*?\s*(?P<name>" + _IDENT + r")\s*"
    r"(?:<[^>{}()]*>\s*)?"
    r"\((?P<params>[^)]*)\)"
    r"\s*(?::\s*[^{;=]+)?\{"
)

_ES_ARROW_RE = re.compile(
    r"\b(?:const|let|var)\s+(?P<name>" + _IDENT + r")\s*"
    r"(?::[^=;]+)?=\s*(?P<async>async\s+)?"
    r"(?:<[^>(]*>\s*)?"
    r"(?:\((?P<params>[^)]*)\)|(?P<single>" + _IDENT + r"))"
    r"\s*(?::\s*[^=;{]+?)?=>"
)

_ES_CLASS_RE = re.compile(
    r"\bclass\s+(?P<name>" + _IDENT + r")\s*(?:<[^>{]*>\s*)?"
    r"(?:extends\s+(?P<extends>" + _IDENT + r"(?:\." + _IDENT + r")*)\s*(?:<[^>{]*>\s*)?)?"
    r"(?:implements\s+(?P<implements>[^{]+?)\s*)?\{"
)

_ES_IMPORT_RE = re.compile(
    r"\bimport\s+(?P<type>type\s+)?"
    r"(?:(?P<default>" + _IDENT + r")\s*(?:,\s*)?)?"
    r"(?:\{(?P<named>[^}]*)\}|\*\s*as\s+(?P<namespace>" + _IDENT + r"))?"
    r"\s*from\s*['\"](?P<source>[^'\"]+)['\"]"
)

_ES_SIDE_EFFECT_IMPORT_RE = re.compile(r"\bimport\s*['\"](?P<source>[^'\"]+)['\"]")

_ES_REQUIRE_RE = re.compile(
    r"\b(?:const|let|var)\s+(?P<binding>" + _IDENT + r"|\{[^}]*\})\s*=\s*"
    r"require\(\s*['\"](?P<source>[^'\"]+)['\"]\s*\)"
)

_ES_EXPORT_VARIABLE_RE = re.compile(r"\bexport\s+(?:const|let|var)\s+(?P<name>" + _IDENT + r")")

_ES_EXPORT_DEFAULT_RE = re.compile(
    r"\bexport\s+default\s+(?!function\b|class\b|async\b|abstract\b)(?P<name>" + _IDENT + r")\s*;?\s*$",
    re.MULTILINE,
)

_EXPORT_MARKER = re.compile(r"\bexport\b")
_ASYNC_MARKER = re.compile(r"\basync\b")

# ===================================================================
# Python patterns
# ===================================================================

_PY_FUNCTION_RE = re.compile(
    r"^(?P<async>async[ \t]+)?def[ \t]+(?P<name>\w+)[ \t]*\((?P<params>[^)]*)\)",
    re.MULTILINE,
)

_PY_CLASS_RE = re.compile(
    r"^class[ \t]+(?P<name>\w+)[ \t]*(?:\((?P<bases>[^)]*)\))?[ \t]*:",
    re.MULTILINE,
)

_PY_FROM_IMPORT_RE = re.compile(
    r"^from[ \t]+(?P<source>\.*[\w.]*)[ \t]+import[ \t]+(?P<names>\([^)]*\)|[^\n#;]+)",
    re.MULTILINE,
)

_PY_IMPORT_RE = re.compile(r"^import[ \t]+(?P<names>[^\n#;]+)", re.MULTILINE)


# ===================================================================
# Shared helpers
# ===================================================================

_OPENERS = "([{<"
_CLOSERS = ")]}>"


def split_top_level(text: str, sep: str = ",") -> List[str]:
    """Split *text* on *sep* outside of brackets, braces and generics."""
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    prev = ""
    for ch in text:
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS and not (ch == ">" and prev == "="):
            depth = max(depth - 1, 0)
        if ch == sep and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
        prev = ch
    parts.append("".join(current))
    return parts


def _find_top_level(text: str, char: str) -> int:
    depth = 0
    prev = ""
    for idx, ch in enumerate(text):
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS and not (ch == ">" and prev == "="):
            depth = max(depth - 1, 0)
        elif ch == char and depth == 0:
            # "=>" and "==" are not assignments
            if char == "=" and text[idx + 1:idx + 2] in ("=", ">"):
                prev = ch
                continue
            return idx
        prev = ch
    return -1


def parse_parameters(params: str, default_marks_optional: bool = False) -> List[Parameter]:
    """Parse a raw parameter list such as ``a: number, b?: string, c = 1``."""
    if not params.strip():
        return []

    result: List[Parameter] = []
    for raw in split_top_level(params):
        text = " ".join(raw.split())
        if not text or text in ("*", "/"):
            continue

        head = text
        default_value: Optional[str] = None
        eq = _find_top_level(text, "=")
        if eq != -1:
            head, default_value = text[:eq].strip(), text[eq + 1:].strip()

        type_: Optional[str] = None
        colon = _find_top_level(head, ":")
        if colon != -1:
            head, type_ = head[:colon].strip(), head[colon + 1:].strip() or None

        optional = head.endswith("?") or (default_marks_optional and default_value is not None)
        name = head.rstrip("?").lstrip("*.").strip()
        if not name:
            continue
        result.append(Parameter(name=name, type=type_, optional=optional, default_value=default_value))
    return result


def _line_of(content: str, pos: int) -> int:
    return content.count("\n", 0, pos) + 1


def _line_prefix(content: str, pos: int) -> str:
    """Text between the start of the line and *pos*."""
    return content[content.rfind("\n", 0, pos) + 1:pos]


def _split_names(text: str) -> List[str]:
    return [" ".join(n.split()) for n in split_top_level(text) if n.strip()]


_TYPE_ARGS_RE = re.compile(r"\s*[<\[].*$", re.DOTALL)


def _type_name(text: str) -> str:
    """``Repository<User>`` -> ``Repository``; ``Generic[T]`` -> ``Generic``."""
    return _TYPE_ARGS_RE.sub("", text)


# ===================================================================
# Lexical extractor
# ===================================================================

class LexicalExtractor:
    """Builds a ``ParsedFile`` from source text using pattern passes."""

    def __init__(self) -> None:
        self._handlers: Dict[str, Callable[[str, str, str], ParsedFile]] = {
            "javascript": self._extract_ecmascript,
            "typescript": self._extract_ecmascript,
            "tsx": self._extract_ecmascript,
            "python": self._extract_python,
        }

    @staticmethod
    def normalize_language(language: str, path: str = "") -> str:
        lang = (language or "").strip().lower()
        if not lang and path:
            return LANGUAGE_MAP.get(posixpath.splitext(path)[1].lower(), "")
        return LANGUAGE_ALIASES.get(lang, lang)

    def supports_language(self, language: str) -> bool:
        return self.normalize_language(language) in self._handlers

    def extract(self, path: str, content: str, language: str) -> ParsedFile:
        """Scan one file. Unsupported languages give an empty record."""
        handler = self._handlers.get(self.normalize_language(language, path))
        if handler is None:
            logger.debug(
                "No pattern set for language '%s'; %s yields an empty record",
                language, path,
                extra={"event": "extract.unsupported_language", "path": path},
            )
            return ParsedFile(path=path, language=language)
        try:
            return handler(path, content or "", language)
        except Exception as exc:
            logger.warning("Failed to scan %s: %s", path, exc, extra={"event": "extract.failed", "path": path})
            return ParsedFile(path=path, language=language)

    # ------------------------------------------------------------------
    # ECMAScript family
    # ------------------------------------------------------------------

    def _extract_ecmascript(self, path: str, content: str, language: str) -> ParsedFile:
        functions = self._es_functions(content)
        classes = self._es_classes(content)
        imports = self._es_imports(content)
        exports = self._es_exports(content, functions, classes)
        return ParsedFile(
            path=path,
            language=language,
            functions=functions,
            classes=classes,
            imports=imports,
            exports=exports,
        )

    def _es_functions(self, content: str) -> List[FunctionRecord]:
        functions: List[FunctionRecord] = []

        for match in _ES_FUNCTION_RE.finditer(content):
            leading = _line_prefix(content, match.start())
            start = _line_of(content, match.start())
            functions.append(FunctionRecord(
                name=match.group("name"),
                parameters=parse_parameters(match.group("params")),
                is_async=bool(_ASYNC_MARKER.search(leading)),
                is_exported=bool(_EXPORT_MARKER.search(leading)),
                start_line=start,
                end_line=start + FUNCTION_LINE_SPAN,
            ))

        for match in _ES_ARROW_RE.finditer(content):
            leading = _line_prefix(content, match.start())
            start = _line_of(content, match.start())
            params = match.group("params")
            if params is None:
                params = match.group("single") or ""
            functions.append(FunctionRecord(
                name=match.group("name"),
                parameters=parse_parameters(params),
                is_async=bool(match.group("async")) or bool(_ASYNC_MARKER.search(leading)),
                is_exported=bool(_EXPORT_MARKER.search(leading)),
                start_line=start,
                end_line=start + FUNCTION_LINE_SPAN,
            ))

        return functions

    def _es_classes(self, content: str) -> List[ClassRecord]:
        classes: List[ClassRecord] = []
        for match in _ES_CLASS_RE.finditer(content):
            leading = _line_prefix(content, match.start())
            start = _line_of(content, match.start())
            implements_text = match.group("implements")
            classes.append(ClassRecord(
                name=match.group("name"),
                extends=match.group("extends"),
                implements=[_type_name(n) for n in _split_names(implements_text)] if implements_text else None,
                is_exported=bool(_EXPORT_MARKER.search(leading)),
                start_line=start,
                end_line=start + CLASS_LINE_SPAN,
            ))
        return classes

    def _es_imports(self, content: str) -> List[ImportRecord]:
        found: List[Tuple[int, ImportRecord]] = []

        for match in _ES_IMPORT_RE.finditer(content):
            names: List[str] = []
            if match.group("default"):
                names.append(match.group("default"))
            if match.group("namespace"):
                names.append(f"* as {match.group('namespace')}")
            if match.group("named"):
                names.extend(_split_names(match.group("named")))
            found.append((match.start(), ImportRecord(
                source_module=match.group("source"),
                imported_names=names,
                is_type_only=bool(match.group("type")),
            )))

        for match in _ES_SIDE_EFFECT_IMPORT_RE.finditer(content):
            found.append((match.start(), ImportRecord(source_module=match.group("source"), imported_names=[])))

        for match in _ES_REQUIRE_RE.finditer(content):
            binding = match.group("binding")
            if binding.startswith("{"):
                names = _split_names(binding.strip("{} "))
            else:
                names = [binding]
            found.append((match.start(), ImportRecord(source_module=match.group("source"), imported_names=names)))

        found.sort(key=lambda item: item[0])
        return [record for _, record in found]

    def _es_exports(
        self,
        content: str,
        functions: List[FunctionRecord],
        classes: List[ClassRecord],
    ) -> List[ExportRecord]:
        exports: List[ExportRecord] = []
        seen: Set[Tuple[str, str]] = set()

        def add(name: str, kind: str) -> None:
            if (name, kind) not in seen:
                seen.add((name, kind))
                exports.append(ExportRecord(name=name, kind=kind))

        function_names = {f.name for f in functions}
        for func in functions:
            if func.is_exported:
                add(func.name, "function")
        for cls in classes:
            if cls.is_exported:
                add(cls.name, "class")
        for match in _ES_EXPORT_VARIABLE_RE.finditer(content):
            if match.group("name") not in function_names:
                add(match.group("name"), "variable")
        for match in _ES_EXPORT_DEFAULT_RE.finditer(content):
            add(match.group("name"), "default")
        return exports

    # ------------------------------------------------------------------
    # Python
    # ------------------------------------------------------------------

    def _extract_python(self, path: str, content: str, language: str) -> ParsedFile:
        functions: List[FunctionRecord] = []
        for match in _PY_FUNCTION_RE.finditer(content):
            start = _line_of(content, match.start())
            name = match.group("name")
            functions.append(FunctionRecord(
                name=name,
                parameters=parse_parameters(match.group("params"), default_marks_optional=True),
                is_async=bool(match.group("async")),
                is_exported=not name.startswith("_"),
                start_line=start,
                end_line=start + FUNCTION_LINE_SPAN,
            ))

        classes: List[ClassRecord] = []
        for match in _PY_CLASS_RE.finditer(content):
            start = _line_of(content, match.start())
            name = match.group("name")
            bases = [
                _type_name(b) for b in _split_names(match.group("bases") or "")
                if "=" not in b
            ]
            classes.append(ClassRecord(
                name=name,
                extends=bases[0] if bases else None,
                implements=bases[1:] or None,
                is_exported=not name.startswith("_"),
                start_line=start,
                end_line=start + CLASS_LINE_SPAN,
            ))

        found: List[Tuple[int, ImportRecord]] = []
        for match in _PY_FROM_IMPORT_RE.finditer(content):
            names = _split_names(match.group("names").strip().strip("()"))
            found.append((match.start(), ImportRecord(
                source_module=match.group("source"),
                imported_names=names,
            )))
        for match in _PY_IMPORT_RE.finditer(content):
            for item in _split_names(match.group("names")):
                module, _, alias = item.partition(" as ")
                found.append((match.start(), ImportRecord(
                    source_module=module.strip(),
                    imported_names=[alias.strip() or module.strip()],
                )))
        found.sort(key=lambda item: item[0])

        exports = [ExportRecord(f.name, "function") for f in functions if f.is_exported]
        exports.extend(ExportRecord(c.name, "class") for c in classes if c.is_exported)

        return ParsedFile(
            path=path,
            language=language,
            functions=functions,
            classes=classes,
            imports=[record for _, record in found],
            exports=exports,
        )


# ===================================================================
# Structure aggregation
# ===================================================================

def _directory_of(path: str) -> str:
    return posixpath.dirname(path) or "/"


def _is_entry_point(path: str) -> bool:
    base = posixpath.basename(path)
    stem = posixpath.splitext(base)[0]
    return stem == "index" or base == "__init__.py"


def group_modules(parsed_files: List[ParsedFile]) -> List[ModuleRecord]:
    """Group parsed files into one module per directory, in first-seen order."""
    modules: Dict[str, ModuleRecord] = {}
    for parsed in parsed_files:
        name = _directory_of(parsed.path)
        module = modules.get(name)
        if module is None:
            module = modules[name] = ModuleRecord(name=name)
        module.files.append(parsed.path)
        for imp in parsed.imports:
            if imp.source_module not in module.dependencies:
                module.dependencies.append(imp.source_module)
        if module.entry_point is None and _is_entry_point(parsed.path):
            module.entry_point = parsed.path
    return list(modules.values())


def parse_files(
    files: Iterable[object],
    extractor: Optional[LexicalExtractor] = None,
    workers: int = 1,
) -> StructuralModel:
    """Extract every file and merge the results into a ``StructuralModel``.

    Extractions are independent, so ``workers > 1`` runs them on a thread
    pool; output order always follows input order.
    """
    sources = coerce_source_files(files)
    extractor = extractor or LexicalExtractor()

    def _extract(src: SourceFile) -> ParsedFile:
        return extractor.extract(src.path, src.content, src.language)

    if workers > 1 and len(sources) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            parsed_files = list(pool.map(_extract, sources))
    else:
        parsed_files = [_extract(src) for src in sources]

    dependencies: List[Dependency] = []
    for parsed in parsed_files:
        for imp in parsed.imports:
            dependencies.append(Dependency(
                from_path=parsed.path,
                to=imp.source_module,
                kind="import",
                relationship=", ".join(imp.imported_names),
            ))

    return StructuralModel(
        files=parsed_files,
        dependencies=dependencies,
        modules=group_modules(parsed_files),
    )


def collect_source_files(project_root: Path, max_bytes: int = 512_000) -> List[SourceFile]:
    """Read every supported source file below *project_root*.

    Paths are POSIX-style and relative to the root, sorted for stable output.
    """
    collected: List[SourceFile] = []
    for file_path in sorted(project_root.rglob("*")):
        if not file_path.is_file() or file_path.suffix not in SUPPORTED_EXTENSIONS:
            continue
        rel_parts = file_path.relative_to(project_root).parts
        if any(part in SKIP_DIRS for part in rel_parts):
            continue
        if file_path.stat().st_size > max_bytes:
            logger.debug("Skipping large file %s", file_path)
            continue
        collected.append(SourceFile(
            path="/".join(rel_parts),
            language=LANGUAGE_MAP.get(file_path.suffix, ""),
            content=file_path.read_text(encoding="utf-8", errors="ignore"),
        ))
    return collected
