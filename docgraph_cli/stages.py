"""Pipeline stages: structural analysis, context retrieval, and generation.

Each stage is a plain object with a ``name``, its own ``StageState`` and an
``execute(context, payload)`` method; the orchestrator composes them by name.
Every ``execute`` begins from a reset state, so one instance can serve
repeated requests one after another.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, TypeVar

from .errors import GenerationServiceError, InputError, RetrievalDegradation
from .graph import DependencyGraphBuilder, node_id_for
from .llm import TextGenerationClient
from .log import stage_logger
from .models import (
    ContextChunk,
    DependencyGraph,
    Insights,
    PipelineContext,
    Scope,
    SourceFile,
    StageState,
    StructuralModel,
)
from .parser import LexicalExtractor, parse_files
from .prompts import build_documentation_prompt

CRITICAL_PATH_LIMIT = 5

InT = TypeVar("InT", contravariant=True)
OutT = TypeVar("OutT", covariant=True)


class PipelineStage(Protocol[InT, OutT]):
    """What the orchestrator needs from a stage."""

    name: str
    state: StageState

    def execute(self, context: PipelineContext, payload: InT) -> OutT:
        ...


@dataclass
class StructuralInput:
    files: List[SourceFile] = field(default_factory=list)


@dataclass
class StructuralResult:
    structure: StructuralModel
    graph: DependencyGraph
    insights: Insights


@dataclass
class RetrievalInput:
    graph: Optional[DependencyGraph]
    structure: Optional[StructuralModel]
    target: Optional[str] = None


@dataclass
class GenerationInput:
    structure: Optional[StructuralModel]
    context: List[ContextChunk] = field(default_factory=list)
    insights: Optional[Insights] = None


# ===================================================================
# Structural stage
# ===================================================================

def extract_insights(structure: StructuralModel, graph: DependencyGraph) -> Insights:
    """Exported components, directory modules, and the most imported files."""
    key_components: Dict[str, None] = {}
    for parsed in structure.files:
        for record in [*parsed.functions, *parsed.classes]:
            if record.is_exported:
                key_components.setdefault(node_id_for(parsed.path, record.name), None)

    modules: List[str] = []
    for parsed in structure.files:
        directory = posixpath.dirname(parsed.path) or "/"
        if directory not in modules:
            modules.append(directory)

    inbound: Dict[str, int] = {}
    for parsed in structure.files:
        if parsed.path not in inbound:
            inbound[parsed.path] = len(graph.incoming(parsed.path, kind="import"))
    # sorted() is stable, so equal counts keep file order
    ranked = sorted((path for path, count in inbound.items() if count > 0), key=lambda p: -inbound[p])

    return Insights(
        key_components=list(key_components),
        modules=modules,
        critical_paths=ranked[:CRITICAL_PATH_LIMIT],
    )


class StructuralStage:
    """Parses files and builds the dependency graph and insights."""

    name = "structural"

    def __init__(
        self,
        extractor: Optional[LexicalExtractor] = None,
        graph_builder: Optional[DependencyGraphBuilder] = None,
        workers: int = 1,
    ):
        self.extractor = extractor or LexicalExtractor()
        self.graph_builder = graph_builder or DependencyGraphBuilder()
        self.workers = workers
        self.state = StageState(self.name)

    def execute(self, context: PipelineContext, payload: Optional[StructuralInput]) -> StructuralResult:
        log = stage_logger(self.name, context)
        files = list(payload.files) if payload is not None else []
        self.state.reset()
        self.state.start("Analyzing code structure")
        log.event(logging.INFO, "structural.started", "Starting analysis of %d files", len(files), file_count=len(files))

        try:
            if not files:
                raise InputError("No files provided for analysis")

            structure = parse_files(files, self.extractor, workers=self.workers)
            log.event(
                logging.INFO, "structural.parsed",
                "Parsed %d functions, %d classes, %d dependencies",
                structure.function_count, structure.class_count, len(structure.dependencies),
                function_count=structure.function_count,
                class_count=structure.class_count,
                dependency_count=len(structure.dependencies),
            )

            self.state.update_task("Building dependency graph")
            graph = self.graph_builder.build_graph(structure)
            log.event(
                logging.DEBUG, "structural.graph_built",
                "Graph built: %d nodes, %d edges", len(graph.nodes), len(graph.edges),
                node_count=len(graph.nodes), edge_count=len(graph.edges),
            )

            insights = extract_insights(structure, graph)
            self.state.complete()
            return StructuralResult(structure=structure, graph=graph, insights=insights)
        except Exception as exc:
            self.state.fail(str(exc))
            log.event(logging.ERROR, "structural.failed", "Structural analysis failed: %s", exc)
            raise


# ===================================================================
# Retrieval stage
# ===================================================================

class RetrievalStage:
    """Selects the files that serve as context for the requested scope.

    Failures never propagate: they are logged, recorded on the stage state,
    and produce an empty context list.
    """

    name = "retrieval"

    def __init__(self, graph_builder: Optional[DependencyGraphBuilder] = None, related_depth: int = 2):
        self.graph_builder = graph_builder or DependencyGraphBuilder()
        self.related_depth = related_depth
        self.state = StageState(self.name)

    def execute(self, context: PipelineContext, payload: Optional[RetrievalInput]) -> List[ContextChunk]:
        log = stage_logger(self.name, context)
        self.state.reset()
        self.state.start("Finding relevant context")
        target = payload.target if payload is not None else None
        log.event(
            logging.INFO, "retrieval.started",
            "Finding relevant context for scope: %s, target: %s", context.scope.value, target or "N/A",
        )

        try:
            if payload is None or payload.graph is None or payload.structure is None:
                raise RetrievalDegradation("No graph or structure provided")

            related = self._select_paths(context.scope, payload.graph, payload.structure, target)
            languages = {f.path: f.language for f in payload.structure.files}
            chunks: List[ContextChunk] = []
            seen = set()
            for path in related:
                if path in seen:
                    continue
                seen.add(path)
                chunks.append(ContextChunk(path=path, content="", language=languages.get(path) or "text"))

            log.event(logging.INFO, "retrieval.completed", "Returning %d context chunks", len(chunks), chunk_count=len(chunks))
            self.state.complete()
            return chunks
        except Exception as exc:
            self.state.fail(str(exc))
            log.event(logging.WARNING, "retrieval.degraded", "Retrieval degraded to empty context: %s", exc)
            return []

    def _select_paths(
        self,
        scope: Scope,
        graph: DependencyGraph,
        structure: StructuralModel,
        target: Optional[str],
    ) -> List[str]:
        if scope == Scope.FILE and target:
            related = self.graph_builder.find_related_files(graph, target, self.related_depth)
            return related + [target]

        if scope == Scope.MODULE and target:
            entry = next((f.path for f in structure.files if target in f.path), None)
            if entry is None:
                raise RetrievalDegradation(f"Entry file not found for module: {target}")
            return self.graph_builder.get_module_files(graph, entry)

        return [f.path for f in structure.files]


# ===================================================================
# Generation stage
# ===================================================================

class GenerationStage:
    """Renders the prompt and asks the text generation service for docs."""

    name = "generation"

    def __init__(self, client: TextGenerationClient, max_output_tokens: int = 4096):
        self.client = client
        self.max_output_tokens = max_output_tokens
        self.state = StageState(self.name)

    def execute(self, context: PipelineContext, payload: Optional[GenerationInput]) -> str:
        log = stage_logger(self.name, context)
        self.state.reset()
        self.state.start("Generating documentation")

        try:
            if payload is None or payload.structure is None:
                raise InputError("Structure data is required for documentation generation")

            prompt = build_documentation_prompt(
                payload.structure,
                payload.context,
                context.scope,
                context.target,
                payload.insights,
            )
            log.event(
                logging.INFO, "generation.request",
                "Requesting documentation (%d prompt characters, %d context files)",
                len(prompt), len(payload.context),
                prompt_chars=len(prompt), context_count=len(payload.context),
            )

            try:
                response = self.client.generate(prompt, self.max_output_tokens)
            except GenerationServiceError:
                raise
            except Exception as exc:
                raise GenerationServiceError(f"Text generation failed: {exc}") from exc

            text = response.first_text()
            if text is None:
                raise GenerationServiceError("Text generation service returned no text content")

            log.event(
                logging.INFO, "generation.completed", "Documentation generated (%d characters)", len(text),
                output_chars=len(text), usage=dict(response.usage),
            )
            self.state.complete()
            return text
        except Exception as exc:
            self.state.fail(str(exc))
            log.event(logging.ERROR, "generation.failed", "Documentation generation failed: %s", exc)
            raise
