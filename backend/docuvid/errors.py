"""Exception taxonomy shared by the generation, gate, reset and assembly layers.

Gate and lookup failures are raised before any write happens. Generation and
storage failures are recorded per scene by the batch loop instead of being
raised. Assembly failures abort the whole run.
"""

from typing import Optional


class DocuvidError(Exception):
    """Base class for all docuvid errors."""


class ValidationError(DocuvidError):
    """A required input is missing or malformed (e.g. empty video style)."""


class NotFoundError(DocuvidError):
    """A referenced project, shot list or scene does not exist."""


class PhaseInvariantError(DocuvidError):
    """A phase gate was confirmed before its completion predicate holds."""

    def __init__(self, message: str, incomplete: Optional[list[int]] = None):
        super().__init__(message)
        self.incomplete = list(incomplete or [])


class ExternalGenerationError(DocuvidError):
    """The image or video backend rejected, failed or timed out a request."""


class StorageError(DocuvidError):
    """Uploading or fetching an object from the object store failed."""


class AssemblyError(DocuvidError):
    """A stage of the assembly pipeline failed.

    Attributes:
        stage: Pipeline stage that failed (fetching, processing, encoding...)
        clip_index: 1-based position of the offending clip, when one is known
    """

    def __init__(self, message: str, stage: str, clip_index: Optional[int] = None):
        super().__init__(message)
        self.stage = stage
        self.clip_index = clip_index
