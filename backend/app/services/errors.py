"""
Stage progression errors.

Raised by the session-bound services (reseed orchestrator, standings store).
The pure engines never raise for malformed rows; they skip them.
"""

from typing import Optional


class ProgressionError(Exception):
    """Base class for stage progression failures"""

    pass


class StageNotFoundError(ProgressionError):
    """Raised when a referenced stage does not exist"""

    def __init__(self, stage_id: int, role: str = "Stage"):
        self.stage_id = stage_id
        self.role = role
        super().__init__(f"{role} {stage_id} not found")


class InvalidStageConfigError(ProgressionError):
    """Raised when a stage is the wrong kind or its config cannot drive a reseed"""

    pass


class UnsupportedSourceKindError(InvalidStageConfigError):
    """Raised when a knockout stage points at a source that is neither league nor groups"""

    def __init__(self, source_stage_id: int, kind: Optional[str]):
        self.source_stage_id = source_stage_id
        self.kind = kind
        super().__init__(f"Unsupported source kind for KO intake: stage {source_stage_id} is '{kind}'")


class ReseedConflictError(ProgressionError):
    """Raised when another writer changed the stage slots since the caller read them.

    Callers should re-read the stage (slots_version) and retry.
    """

    def __init__(self, stage_id: int, expected_version: int, actual_version: int):
        self.stage_id = stage_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"RESEED_CONFLICT: stage {stage_id} slots_version is {actual_version}, expected {expected_version}"
        )
