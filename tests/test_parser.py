"""Tests for the lexical extractor and structure aggregation."""

from pathlib import Path

import pytest

from docgraph_cli.models import Dependency, Parameter, SourceFile
from docgraph_cli.parser import (
    CLASS_LINE_SPAN,
    FUNCTION_LINE_SPAN,
    LexicalExtractor,
    collect_source_files,
    parse_files,
    parse_parameters,
    split_top_level,
)


@pytest.fixture
def extractor() -> LexicalExtractor:
    return LexicalExtractor()


def test_exported_function_declaration(extractor: LexicalExtractor):
    """A single exported function is picked up with its parameter."""
    parsed = extractor.extract("a.ts", "export function foo(x){}", "typescript")

    assert len(parsed.functions) == 1
    func = parsed.functions[0]
    assert func.name == "foo"
    assert func.is_exported is True
    assert func.is_async is False
    assert [p.name for p in func.parameters] == ["x"]
    assert func.parameters[0] == Parameter(name="x")


def test_function_declarations(extractor: LexicalExtractor, sample_typescript_code: str):
    parsed = extractor.extract("card.tsx", sample_typescript_code, "tsx")

    names = [f.name for f in parsed.functions]
    # declaration pass runs before the arrow pass
    assert names == ["loadUser", "helper", "formatName", "double"]

    load_user = parsed.functions[0]
    assert load_user.is_async and load_user.is_exported
    assert load_user.parameters == [
        Parameter(name="id", type="string"),
        Parameter(name="retries", type="number", optional=True),
        Parameter(name="timeout", default_value="30"),
    ]
    assert load_user.start_line == 6
    assert load_user.end_line == 6 + FUNCTION_LINE_SPAN

    helper = parsed.functions[1]
    assert not helper.is_exported
    assert not helper.is_async


def test_arrow_functions(extractor: LexicalExtractor, sample_typescript_code: str):
    parsed = extractor.extract("card.tsx", sample_typescript_code, "tsx")
    by_name = {f.name: f for f in parsed.functions}

    assert by_name["formatName"].is_exported
    assert [p.name for p in by_name["formatName"].parameters] == ["first", "last"]
    assert not by_name["double"].is_exported
    assert [p.name for p in by_name["double"].parameters] == ["x"]


def test_async_arrow_function(extractor: LexicalExtractor):
    parsed = extractor.extract("f.js", "export const load = async (url) => fetch(url);", "javascript")

    assert parsed.functions[0].name == "load"
    assert parsed.functions[0].is_async
    assert parsed.functions[0].is_exported


def test_class_declarations(extractor: LexicalExtractor, sample_typescript_code: str):
    parsed = extractor.extract("card.tsx", sample_typescript_code, "tsx")

    assert [c.name for c in parsed.classes] == ["UserCard", "Internal"]
    card = parsed.classes[0]
    assert card.extends == "Component"
    assert card.implements == ["Renderable", "Serializable"]
    assert card.is_exported
    assert card.end_line == card.start_line + CLASS_LINE_SPAN
    assert card.methods == [] and card.properties == []

    internal = parsed.classes[1]
    assert internal.extends is None
    assert internal.implements is None
    assert not internal.is_exported


def test_generic_arguments_are_dropped_from_base_names(extractor: LexicalExtractor):
    ts = extractor.extract("a.ts", "class A implements Repo<User>, Cache<string, User> {}", "typescript")
    py = extractor.extract("b.py", "class B(Generic[T], Mapping[str, int]):\n    pass\n", "python")

    assert ts.classes[0].implements == ["Repo", "Cache"]
    assert py.classes[0].extends == "Generic"
    assert py.classes[0].implements == ["Mapping"]


def test_import_forms(extractor: LexicalExtractor, sample_typescript_code: str):
    parsed = extractor.extract("card.tsx", sample_typescript_code, "tsx")

    sources = [i.source_module for i in parsed.imports]
    assert sources == ["react", "./types", "path", "./styles.css"]

    react, types, path_ns, styles = parsed.imports
    assert react.imported_names == ["React", "useState"]
    assert not react.is_type_only
    assert types.imported_names == ["Props"]
    assert types.is_type_only
    assert path_ns.imported_names == ["* as path"]
    assert styles.imported_names == []


def test_commonjs_require(extractor: LexicalExtractor):
    code = "const fs = require('fs');\nconst { join, resolve } = require(\"path\");\n"
    parsed = extractor.extract("build.js", code, "javascript")

    assert [(i.source_module, i.imported_names) for i in parsed.imports] == [
        ("fs", ["fs"]),
        ("path", ["join", "resolve"]),
    ]


def test_exports(extractor: LexicalExtractor, sample_typescript_code: str):
    parsed = extractor.extract("card.tsx", sample_typescript_code, "tsx")

    assert [(e.name, e.kind) for e in parsed.exports] == [
        ("loadUser", "function"),
        ("formatName", "function"),
        ("UserCard", "class"),
        ("VERSION", "variable"),
    ]


def test_export_default_identifier(extractor: LexicalExtractor):
    parsed = extractor.extract("logger.ts", "class Logger {}\nexport default Logger;\n", "typescript")

    assert [(e.name, e.kind) for e in parsed.exports] == [("Logger", "default")]


def test_export_marker_is_per_line(extractor: LexicalExtractor):
    """An earlier export must not mark later declarations as exported."""
    code = "export const A = 1;\nfunction later() {}\n"
    parsed = extractor.extract("x.ts", code, "typescript")

    assert parsed.functions[0].name == "later"
    assert not parsed.functions[0].is_exported


def test_language_aliases(extractor: LexicalExtractor):
    parsed = extractor.extract("x.js", "function a() {}", "JS")
    assert [f.name for f in parsed.functions] == ["a"]


def test_language_inferred_from_extension_when_missing(extractor: LexicalExtractor):
    parsed = extractor.extract("x.ts", "function a() {}", "")
    assert [f.name for f in parsed.functions] == ["a"]


def test_unsupported_language_yields_empty_record(extractor: LexicalExtractor):
    parsed = extractor.extract("main.go", "func main() {}\nimport \"fmt\"", "go")

    assert parsed.path == "main.go"
    assert parsed.language == "go"
    assert parsed.functions == [] and parsed.classes == []
    assert parsed.imports == [] and parsed.exports == []


@pytest.mark.parametrize("code", [
    "function (((( {",
    "class {",
    "import { from",
    "export const = => ;",
    "",
    "\x00\x01 function",
])
def test_malformed_code_never_raises(extractor: LexicalExtractor, code: str):
    parsed = extractor.extract("broken.ts", code, "typescript")
    assert parsed.path == "broken.ts"


def test_python_extraction(extractor: LexicalExtractor):
    code = '''import os
import numpy as np
from .models import User, Order
from typing import (
    Dict,
    List,
)


async def fetch(url: str, timeout: float = 5.0, *args, **kwargs):
    pass


def _private():
    pass


class Service(Base, Mixin, metaclass=Meta):
    def method(self):
        pass
'''
    parsed = extractor.extract("pkg/service.py", code, "python")

    assert [f.name for f in parsed.functions] == ["fetch", "_private"]
    fetch = parsed.functions[0]
    assert fetch.is_async and fetch.is_exported
    assert [p.name for p in fetch.parameters] == ["url", "timeout", "args", "kwargs"]
    assert fetch.parameters[1].optional
    assert not parsed.functions[1].is_exported

    assert len(parsed.classes) == 1
    assert parsed.classes[0].extends == "Base"
    assert parsed.classes[0].implements == ["Mixin"]

    assert [(i.source_module, i.imported_names) for i in parsed.imports] == [
        ("os", ["os"]),
        ("numpy", ["np"]),
        (".models", ["User", "Order"]),
        ("typing", ["Dict", "List"]),
    ]
    assert [(e.name, e.kind) for e in parsed.exports] == [("fetch", "function"), ("Service", "class")]


# ---------------------------------------------------------------------------
# Parameter parsing
# ---------------------------------------------------------------------------

def test_parse_parameters_handles_nested_types():
    params = parse_parameters("map: Map<string, number>, cb: (a: number, b: number) => void, ...rest: any[]")

    assert [p.name for p in params] == ["map", "cb", "rest"]
    assert params[0].type == "Map<string, number>"
    assert params[1].type == "(a: number, b: number) => void"


def test_parse_parameters_default_with_arrow():
    params = parse_parameters("onDone = () => {}, flag = true")

    assert params[0] == Parameter(name="onDone", default_value="() => {}")
    assert params[1] == Parameter(name="flag", default_value="true")


def test_parse_parameters_empty():
    assert parse_parameters("   ") == []


def test_split_top_level():
    assert split_top_level("a, {b, c}, d<e, f>") == ["a", " {b, c}", " d<e, f>"]


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def test_parse_files_builds_dependencies():
    files = [
        SourceFile("a.ts", "typescript", "import { b1, b2 } from './b';\nexport function a() {}"),
        SourceFile("b.ts", "typescript", "export function b1() {}\nexport function b2() {}"),
    ]
    model = parse_files(files)

    assert [f.path for f in model.files] == ["a.ts", "b.ts"]
    assert model.dependencies == [
        Dependency(from_path="a.ts", to="./b", kind="import", relationship="b1, b2"),
    ]


def test_parse_files_accepts_mappings():
    model = parse_files([{"path": "x.js", "content": "function x() {}", "language": "javascript"}])
    assert model.files[0].functions[0].name == "x"


def test_parse_files_is_deterministic(sample_files):
    first = parse_files(sample_files)
    second = parse_files(sample_files)

    assert first == second
    assert repr(first) == repr(second)


def test_parallel_extraction_preserves_order(sample_files):
    sequential = parse_files(sample_files)
    parallel = parse_files(sample_files, workers=4)

    assert parallel == sequential


def test_parse_files_groups_modules(sample_files):
    model = parse_files(sample_files)
    modules = {m.name: m for m in model.modules}

    assert set(modules) == {"scripts", "src", "src/models", "src/services", "src/utils"}
    assert modules["src"].entry_point == "src/index.ts"
    assert modules["src/services"].files == ["src/services/baseService.ts", "src/services/userService.ts"]
    assert "../models/user" in modules["src/services"].dependencies


def test_root_files_group_under_slash():
    model = parse_files([SourceFile("index.js", "javascript", "")])
    assert model.modules[0].name == "/"
    assert model.modules[0].entry_point == "index.js"


def test_collect_source_files(sample_project_path: Path):
    files = collect_source_files(sample_project_path)
    paths = {f.path for f in files}

    assert "src/index.ts" in paths
    assert "scripts/build.js" in paths
    assert not any(p.startswith("node_modules/") for p in paths)
    languages = {f.path: f.language for f in files}
    assert languages["src/index.ts"] == "typescript"
    assert languages["scripts/build.js"] == "javascript"
