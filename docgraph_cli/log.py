"""Structured, leveled logging for pipeline stages.

Stage loggers attach request and stage identifiers plus an ``event`` name to
every record's attributes, so handlers (and tests, via ``caplog``) can filter
on fields instead of parsing message text.
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping, Optional, Tuple

from rich.console import Console
from rich.logging import RichHandler

from .models import PipelineContext


class StageLoggerAdapter(logging.LoggerAdapter):
    """Merges the adapter's context fields into each call's ``extra``."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def event(self, level: int, event: str, msg: str, *args: Any, **fields: Any) -> None:
        """Log *msg* tagged with *event* and any additional *fields*."""
        self.log(level, msg, *args, extra={"event": event, **fields})


def stage_logger(stage: str, context: PipelineContext, logger: Optional[logging.Logger] = None) -> StageLoggerAdapter:
    base = logger or logging.getLogger(f"docgraph_cli.{stage}")
    return StageLoggerAdapter(base, {
        "stage": stage,
        "request_id": context.request_id,
        "repository_id": context.repository_id,
    })


def configure_logging(verbose: bool = False) -> None:
    """Route ``docgraph_cli`` logs to stderr through Rich."""
    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=verbose)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger("docgraph_cli")
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
