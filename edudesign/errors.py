from typing import Optional


class PipelineError(Exception):
    """Base class for errors the pipeline lets reach its caller."""


class GenerationError(PipelineError):
    """The text-generation collaborator failed for one unit."""

    def __init__(self, stage: str, ordinal: int, cause: BaseException):
        self.stage = stage
        self.ordinal = ordinal
        self.cause = cause
        super().__init__(f"Generation failed for {stage} unit {ordinal}: {cause}")


class BatchError(PipelineError):
    """
    Aggregate error of a fail-fast batch.

    ``errors`` holds every error collected before the siblings were
    cancelled, sorted by unit ordinal; ``ordinal`` is the lowest of them.
    """

    def __init__(self, stage: str, errors: list[Exception]):
        self.stage = stage
        self.errors = errors
        first: Optional[Exception] = errors[0] if errors else None
        self.ordinal = getattr(first, "ordinal", None)
        super().__init__(f"Batch for {stage} aborted: {len(errors)} unit(s) failed, lowest ordinal {self.ordinal}")
