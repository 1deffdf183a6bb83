"""Custom exception types for the Tradeflow deployment engine.

Every error raised by the engine is a pure-function failure: retrying with
the same inputs produces the same error. Messages follow one standard:
- What failed (specific operation or component)
- Where it failed (category, layer, token or path)
- Why it failed (the specific condition)
- How to fix it (actionable guidance)
"""


class TradeflowError(Exception):
    """Base exception for all Tradeflow errors."""

    pass


class ConfigValidationError(TradeflowError):
    """Raised when config.yaml fails Pydantic validation.

    Includes specific field errors with actionable messages.
    """

    pass


class ConfigLoadError(TradeflowError):
    """Raised when config.yaml cannot be loaded (file not found, YAML parse error)."""

    pass


class InvalidArgument(TradeflowError):
    """Raised for caller errors: empty category set, unknown category, bad runtime context."""

    pass


class SchemaLoadFailure(TradeflowError):
    """Raised when a schema fragment cannot be fetched or is malformed.

    Attributes:
        category: Category identifier being loaded (if known)
        layer: Fragment layer being loaded (classification, behavior, labels)
    """

    def __init__(self, message: str, category: str | None = None, layer: str | None = None):
        super().__init__(message)
        self.category = category
        self.layer = layer


class ConsistencyViolation(TradeflowError):
    """Raised when merged layers disagree on their category sets.

    Fatal by default; callers may downgrade orphans to warnings through
    the ``validation.orphan_policy`` setting.

    Attributes:
        classification_orphans: Categories referenced by classification but
            missing from the label taxonomy
        label_orphans: Top-level labels with no classification category
        duplicate_paths: Label paths that collide after dynamic-variable
            resolution or token normalization
    """

    def __init__(
        self,
        message: str,
        classification_orphans: list[str] | None = None,
        label_orphans: list[str] | None = None,
        duplicate_paths: list[str] | None = None,
    ):
        super().__init__(message)
        self.classification_orphans = classification_orphans or []
        self.label_orphans = label_orphans or []
        self.duplicate_paths = duplicate_paths or []


class MissingTemplateToken(TradeflowError):
    """Raised when a template references tokens absent from the placeholder map.

    Attributes:
        tokens: Token names (without delimiters) that could not be resolved
    """

    def __init__(self, message: str, tokens: list[str]):
        super().__init__(message)
        self.tokens = tokens


class MalformedOutput(TradeflowError):
    """Raised when the substituted document does not parse as JSON.

    This is a backstop for a template/engine version mismatch; sanitization
    is what keeps well-formed templates well-formed.

    Attributes:
        line: Line number reported by the parser
        column: Column number reported by the parser
    """

    def __init__(self, message: str, line: int | None = None, column: int | None = None):
        super().__init__(message)
        self.line = line
        self.column = column
