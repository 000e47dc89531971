"""
Error types raised by the street tree pipeline.

Loading through missing-data elimination is shared by every research
question, so failures there end the run. Training and evaluation failures
end only the affected question.
"""


class StreetTreeError(Exception):
    """Base class for pipeline errors."""

    kind = "error"

    def __init__(self, message: str, source: str = None):
        self.message = message
        self.source = source
        super().__init__(message)

    def __str__(self) -> str:
        if self.source:
            return f"{self.message} ({self.source})"
        return self.message


class SourceUnavailable(StreetTreeError):
    """Input file is missing or unreadable."""

    kind = "source_unavailable"


class MalformedInput(StreetTreeError):
    """Rows or columns are structurally inconsistent."""

    kind = "malformed_input"


class SchemaMismatch(StreetTreeError):
    """An expected column is absent after normalization."""

    kind = "schema_mismatch"


class InsufficientData(StreetTreeError):
    """Too few rows to split or train."""

    kind = "insufficient_data"


class LevelMismatch(StreetTreeError):
    """Categorical levels at prediction time differ from those seen at fit time."""

    kind = "level_mismatch"

    def __init__(self, column: str, unknown_levels, known_levels):
        self.column = column
        self.unknown_levels = sorted(str(level) for level in unknown_levels)
        self.known_levels = list(known_levels)
        super().__init__(
            f"Column '{column}' has levels {self.unknown_levels} "
            f"not in the fitted domain {self.known_levels}"
        )
