"""Custom exceptions for Storyloop services.

State machines (workflow, gaps, drafts) do not raise on misuse; these are
reserved for programmer errors and for failures inside service
implementations that callers convert into neutral results.
"""


class StoryloopError(Exception):
    """Base class for Storyloop errors."""


class DuplicateVariantError(StoryloopError):
    """Raised when a variant id is added to a store twice.

    Attributes:
        variant_id: The id that was already present
    """

    def __init__(self, variant_id: str):
        self.variant_id = variant_id
        super().__init__(f"Variant already exists: {variant_id}")


class VariantNotFoundError(StoryloopError, KeyError):
    """Raised when a lookup names a variant the store does not hold."""

    def __init__(self, variant_id: str):
        self.variant_id = variant_id
        super().__init__(f"Variant not found: {variant_id}")

    def __str__(self) -> str:
        return self.args[0]


class AnalysisUnavailableError(StoryloopError):
    """Raised by an analysis service that cannot produce a usable result.

    Attributes:
        operation: Service operation that failed (e.g. "analyze_gaps")
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str = "Analysis service unavailable"):
        self.operation = operation
        self.message = message
        super().__init__(f"{message}: {operation}")
