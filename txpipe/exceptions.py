"""Pipeline error types."""


class PipelineError(Exception):
    """Base class for errors raised by the request pipeline and service lifecycle."""


class EntityMaterializationTimeout(PipelineError):
    """The response body was not fully produced within the allowed time."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Response entity was not materialized within {timeout}s")


class ShutdownStepTimeout(PipelineError):
    """A shutdown step did not finish within its time budget."""

    def __init__(self, step: str, timeout: float):
        self.step = step
        self.timeout = timeout
        super().__init__(f"Shutdown step '{step}' did not finish within {timeout}s")


class ServiceBindError(PipelineError):
    """The listener could not be bound at startup."""
