"""Errors raised for caller contract violations."""


class InvalidInputError(ValueError):
    """Raised when a caller passes input the engine must not guess about."""


class InvalidRatingError(InvalidInputError):
    """Raised for a rating outside again/hard/good/easy."""


class EmptySpeechError(InvalidInputError):
    """Raised when the expected word sequence is empty."""


class InvalidDurationError(InvalidInputError):
    """Raised when a session would end before it started."""
