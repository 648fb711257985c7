"""Error taxonomy for the action pipeline.

None of these are meant to escape the pipeline: each one is caught at the
stage that owns it and turned into user-visible text.
"""


class PipelineError(Exception):
    """Base class for action pipeline failures."""


class ExtractionParseError(PipelineError):
    """Model output could not be parsed into the reply schema."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class GenerationError(PipelineError):
    """Language model backend unavailable, blocked, over quota or timed out."""


class ResolutionError(PipelineError):
    """Entity store query failed while expanding search criteria."""


class ExecutionError(PipelineError):
    """A single action's store mutation failed."""


class InvalidTransition(PipelineError, ValueError):
    """An action status change not allowed by the confirmation state machine."""


class NotFound(PipelineError, LookupError):
    """Unknown conversation, turn or action id."""
