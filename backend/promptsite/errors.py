"""
Exceptions raised by the generation pipeline.

Anything derived from GenerationError is fatal for the current job: the
orchestrator writes it to the job row as `error` and mirrors it into chat.
"""


class GenerationError(Exception):
    """A generation job cannot produce a usable result."""


class OutputParseError(GenerationError):
    """Model output could not be turned into a file mapping."""


class EmptyOutputError(GenerationError):
    """Generation finished without producing any files."""


class InvalidDocumentError(GenerationError):
    """A first-time index.html is missing its doctype / <html> root."""


class InvalidTransitionError(ValueError):
    """A job or task status change that the state machine does not allow."""
