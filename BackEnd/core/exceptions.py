class StudyTrackerError(Exception):
	"""Base class for errors raised inside the tracker backend."""


class StoreError(StudyTrackerError):
	"""The key-value store could not read, write or decode a value."""

	def __init__(self, message: str, key: str | None = None):
		super().__init__(message)
		self.key = key


class ImportValidationError(StudyTrackerError):
	"""An import payload is not valid export data."""


class SettingsError(StudyTrackerError, ValueError):
	"""A settings value is out of range or of the wrong type."""
