"""Orchestrator coordinating the structural, retrieval, and generation stages."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .config_manager import Settings, load_settings
from .llm import TextGenerationClient, create_client
from .log import stage_logger
from .models import (
    ContextChunk,
    DocumentationMetadata,
    DocumentationResult,
    PipelineContext,
    SourceFile,
    StageState,
    coerce_source_files,
)
from .stages import (
    GenerationInput,
    GenerationStage,
    PipelineStage,
    RetrievalInput,
    RetrievalStage,
    StructuralInput,
    StructuralStage,
)

STAGE_ORDER = ("structural", "retrieval", "generation")


def hydrate_chunks(chunks: Iterable[ContextChunk], files: Iterable[SourceFile]) -> List[ContextChunk]:
    """Fill chunk content from the input files; drop chunks left empty."""
    content_by_path: Dict[str, str] = {}
    for src in files:
        content_by_path.setdefault(src.path, src.content)

    hydrated: List[ContextChunk] = []
    for chunk in chunks:
        content = content_by_path.get(chunk.path, "")
        if content:
            hydrated.append(ContextChunk(path=chunk.path, content=content, language=chunk.language))
    return hydrated


class DocumentationOrchestrator:
    """Runs Structural -> Retrieval -> Generation for one request at a time.

    Stages are looked up by name in ``self.stages`` and can be replaced by
    passing ``stages={"retrieval": ...}``. State is reset at the start of
    every ``execute``; use one orchestrator per concurrent request.
    """

    name = "orchestrator"

    def __init__(
        self,
        client: Optional[TextGenerationClient] = None,
        settings: Optional[Settings] = None,
        stages: Optional[Mapping[str, PipelineStage[Any, Any]]] = None,
    ):
        self.settings = settings or load_settings()
        overrides = dict(stages or {})

        self.stages: Dict[str, PipelineStage[Any, Any]] = {}
        self.stages["structural"] = overrides.get("structural") or StructuralStage(workers=self.settings.workers)
        self.stages["retrieval"] = overrides.get("retrieval") or RetrievalStage(
            related_depth=self.settings.related_depth,
        )
        generation = overrides.get("generation")
        if generation is None:
            generation = GenerationStage(
                client or create_client(self.settings),
                max_output_tokens=self.settings.max_output_tokens,
            )
        self.stages["generation"] = generation
        self.state = StageState(self.name)

    def stage_states(self) -> Dict[str, StageState]:
        states = {name: self.stages[name].state.snapshot() for name in STAGE_ORDER}
        states[self.name] = self.state.snapshot()
        return states

    def execute(
        self,
        context: PipelineContext,
        files: Iterable[Union[SourceFile, Mapping[str, Any]]],
    ) -> DocumentationResult:
        started = time.monotonic()
        log = stage_logger(self.name, context)

        self.state.reset()
        for stage in self.stages.values():
            stage.state.reset()
        self.state.start("Orchestrating documentation generation")
        log.event(
            logging.INFO, "pipeline.started",
            "Starting documentation generation for %s scope", context.scope.value,
            scope=context.scope.value, target=context.target,
        )

        try:
            sources = coerce_source_files(files or [])

            self.state.update_task("Analyzing code structure")
            structural = self.stages["structural"].execute(context, StructuralInput(files=sources))

            self.state.update_task("Finding relevant code context")
            chunks = self.stages["retrieval"].execute(context, RetrievalInput(
                graph=structural.graph,
                structure=structural.structure,
                target=context.target,
            ))
            hydrated = hydrate_chunks(chunks, sources)
            log.event(
                logging.DEBUG, "pipeline.hydrated",
                "Hydrated %d of %d context chunks", len(hydrated), len(chunks),
                chunk_count=len(chunks), hydrated_count=len(hydrated),
            )

            self.state.update_task("Generating documentation")
            documentation = self.stages["generation"].execute(context, GenerationInput(
                structure=structural.structure,
                context=hydrated,
                insights=structural.insights,
            ))

            structure = structural.structure
            metadata = DocumentationMetadata(
                files_analyzed=[f.path for f in structure.files],
                functions_documented=structure.function_count,
                classes_documented=structure.class_count,
                modules_documented=len(structure.modules),
                generation_time=int((time.monotonic() - started) * 1000),
            )
            self.state.complete()
            log.event(
                logging.INFO, "pipeline.completed",
                "Documentation generation complete in %dms", metadata.generation_time,
                generation_time=metadata.generation_time,
                function_count=metadata.functions_documented,
                class_count=metadata.classes_documented,
                module_count=metadata.modules_documented,
            )
            return DocumentationResult(documentation=documentation, metadata=metadata)
        except Exception as exc:
            log.event(logging.ERROR, "pipeline.failed", "Documentation generation failed: %s", exc)
            self.state.fail(str(exc))
            raise


def generate_documentation(
    context: Union[PipelineContext, Mapping[str, Any]],
    files: Iterable[Union[SourceFile, Mapping[str, Any]]],
    client: Optional[TextGenerationClient] = None,
    settings: Optional[Settings] = None,
) -> DocumentationResult:
    """Entry point: document *files* for the scope described by *context*.

    Each call gets its own orchestrator and stage states. Errors from any
    stage other than retrieval propagate unchanged.
    """
    if not isinstance(context, PipelineContext):
        context = PipelineContext(**dict(context))
    orchestrator = DocumentationOrchestrator(client=client, settings=settings)
    return orchestrator.execute(context, files)
