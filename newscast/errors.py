"""Error types raised by the newscast pipeline.

Only ContentTooShortError and TopicDiscoveryExhaustedError are allowed to
end a run without an episode; everything else is caught at the stage that
raised it and mapped to a fallback.
"""


class NewscastError(RuntimeError):
    """Base error carrying the pipeline stage it came from."""

    def __init__(self, message: str, stage: str = ""):
        self.stage = stage
        super().__init__(f"[{stage}] {message}" if stage else message)


class ProviderFailure(NewscastError):
    """Network, HTTP or quota error from the generative or search service."""

    def __init__(self, message: str, provider: str = "", stage: str = ""):
        self.provider = provider
        super().__init__(message, stage=stage)


class PlanValidationError(NewscastError):
    """A model-generated narrative plan is missing required parts."""


class ContentTooShortError(NewscastError):
    """Script generation returned an implausibly small result."""


class TopicDiscoveryExhaustedError(NewscastError):
    """Every topic discovery strategy failed to produce a topic."""
