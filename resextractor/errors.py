"""Exceptions and warnings raised while decoding resource forks.

Every exception and warning class has a ``kind`` attribute (an :class:`ErrorKind`), so that callers can branch on the kind of failure without matching on the exact class.
"""

import enum
import typing


class ErrorKind(enum.Enum):
	STREAM_NOT_OPEN = "stream not open"
	SHORT_READ = "short read"
	TYPE_NOT_FOUND = "type not found"
	RESOURCE_NOT_FOUND = "resource not found"
	SIZE_MISMATCH = "size mismatch"


class ShortReadReason(enum.Enum):
	"""Why a read returned fewer bytes than requested."""

	END_OF_STREAM = "end of stream"
	IO_FAILURE = "I/O failure"
	COUNT_MISMATCH = "byte count mismatch"


class ResourceForkError(Exception):
	"""Base class for all errors raised by this library."""

	kind: typing.ClassVar[ErrorKind]


class StreamNotOpenError(ResourceForkError):
	"""Raised when the underlying stream has already been closed."""

	kind = ErrorKind.STREAM_NOT_OPEN


class ShortReadError(ResourceForkError):
	"""Raised when fewer bytes could be read from the stream than were requested."""

	kind = ErrorKind.SHORT_READ

	reason: ShortReadReason
	expected: int
	actual: int

	def __init__(self, reason: ShortReadReason, expected: int, actual: int, what: str = "data") -> None:
		if reason == ShortReadReason.END_OF_STREAM:
			message = f"End of stream reached before reading {expected} bytes of {what}"
		elif reason == ShortReadReason.IO_FAILURE and expected < 0:
			message = f"I/O error while reading {what}"
		elif reason == ShortReadReason.IO_FAILURE:
			message = f"I/O error while reading {expected} bytes of {what}"
		else:
			message = f"Expected to read {expected} bytes of {what}, but got {actual} bytes"

		super().__init__(message)

		self.reason = reason
		self.expected = expected
		self.actual = actual


class ResourceNotFoundError(ResourceForkError, KeyError):
	"""Raised when no resource matches a type code and key.

	Catching this class also catches :class:`TypeNotFoundError`, because a missing type and a missing key within a present type are both just "not found" to most callers.
	"""

	kind = ErrorKind.RESOURCE_NOT_FOUND

	def __str__(self) -> str:
		# KeyError would otherwise repr() the message.
		return str(self.args[0]) if self.args else ""


class TypeNotFoundError(ResourceNotFoundError):
	"""Raised when the type code does not appear in the type list at all."""

	kind = ErrorKind.TYPE_NOT_FOUND


class SizeMismatchWarning(UserWarning):
	"""Issued when a typed read's width differs from the size stored in the resource data record.

	The typed value is still returned. Resource data often carries trailing padding, so this is not treated as an error.
	"""

	kind = ErrorKind.SIZE_MISMATCH
