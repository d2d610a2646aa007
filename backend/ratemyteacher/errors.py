from __future__ import annotations


class RateMyTeacherError(Exception):
	"""Base class for domain errors raised by the services."""


class ValidationError(RateMyTeacherError, ValueError):
	pass


class InvalidThresholdError(ValidationError):
	pass


class InvalidTierError(ValidationError):
	pass


class RatingValidationError(ValidationError):
	pass


class NotFoundError(RateMyTeacherError, LookupError):
	pass


class SemesterNotFoundError(NotFoundError):
	pass


class NoSemestersConfiguredError(RateMyTeacherError):
	"""No semester rows exist at all; the system has not been seeded."""


class AiDisabledError(RateMyTeacherError):
	pass
