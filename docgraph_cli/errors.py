"""Exception types raised by the documentation pipeline."""

from __future__ import annotations


class DocGraphError(Exception):
    """Base class for pipeline errors."""


class InputError(DocGraphError, ValueError):
    """The pipeline was invoked without usable input."""


class RetrievalDegradation(DocGraphError):
    """Retrieval could not resolve its scope.

    Only raised inside the retrieval stage, which turns it into an empty
    context list.
    """


class GenerationServiceError(DocGraphError, RuntimeError):
    """The text generation service failed or returned no text."""


class StageTransitionError(DocGraphError, ValueError):
    """A stage status was moved backwards without a reset."""
