class SoftregError(Exception):
    """Base class for every error raised by the softmax regression engine."""


class InvalidInputError(SoftregError, ValueError):
    """Training or prediction input violates a precondition."""


class ShapeMismatchError(InvalidInputError):
    """Input dimensions disagree with the model's existing parameters."""


class NotFittedError(SoftregError, RuntimeError):
    """Model has no parameters yet (neither fitted nor loaded)."""


class ModelFormatError(SoftregError, ValueError):
    """A persisted model file is malformed or internally inconsistent."""
