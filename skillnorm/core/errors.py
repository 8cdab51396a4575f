# skillnorm/core/errors.py


class SkillNormError(Exception):
    """Base class for pipeline errors."""


class CorpusFetchError(SkillNormError):
    """A required corpus (skills, vectors, mentions) could not be read.

    Fatal for the current run: continuing without a grounding corpus would
    silently degrade every downstream decision.
    """

    def __init__(self, corpus: str, cause: Exception | None = None):
        super().__init__(f"Failed to fetch {corpus}: {cause}")
        self.corpus = corpus
        self.cause = cause


class PipelineLockedError(SkillNormError):
    """Another runner currently holds the named pipeline lock."""

    def __init__(self, name: str, owner: str | None = None):
        super().__init__(f"Pipeline '{name}' is locked by {owner or 'another runner'}")
        self.name = name
        self.owner = owner


class LLMResponseError(SkillNormError):
    """LLM output did not validate against the expected response schema."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw

    @property
    def preview(self) -> str:
        return self.raw[:200]
