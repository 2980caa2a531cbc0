"""A collection of utility functions related to byte order and reading from binary streams. For internal use only."""

import functools
import struct
import sys
import typing

from .errors import ShortReadError, ShortReadReason, StreamNotOpenError

# All integers stored in resource forks are big-endian, the native byte order of the 68k and PowerPC processors used in old Macs.
DISK_BYTE_ORDER = "big"

# Byte order of the machine we are running on. Determined once, never changes afterwards.
NATIVE_BYTE_ORDER: str = sys.byteorder

# struct format characters of fixed-width scalars that can be byte-swapped.
_SCALAR_FORMATS = frozenset("bBhHiIlLqQefd")

_STRUCT_PREFIXES = {
	"little": "<",
	"big": ">",
}


@functools.lru_cache(maxsize=None)
def _scalar_struct(fmt: str, byteorder: str) -> struct.Struct:
	if len(fmt) != 1 or fmt not in _SCALAR_FORMATS:
		raise ValueError(f"Not a fixed-width scalar format: {fmt!r}")

	try:
		prefix = _STRUCT_PREFIXES[byteorder]
	except KeyError:
		raise ValueError(f"Unknown byte order: {byteorder!r}")

	return struct.Struct(prefix + fmt)


def scalar_width(fmt: str) -> int:
	"""Get the width in bytes of the scalar described by the struct format character fmt."""

	return _scalar_struct(fmt, DISK_BYTE_ORDER).size


def swap_byte_order(value: typing.Any, fmt: str) -> typing.Any:
	"""Reverse the byte order of a fixed-width scalar.

	:param value: The value to swap.
	:param fmt: A single struct format character describing the scalar's width and kind, e. g. ``"H"`` for an unsigned 16-bit integer or ``"d"`` for a double.
	:return: The value whose bytes are those of ``value`` in reverse order.
	"""

	(swapped,) = _scalar_struct(fmt, "little").unpack(_scalar_struct(fmt, "big").pack(value))
	return swapped


def to_native(value: typing.Any, fmt: str, *, byteorder: str = NATIVE_BYTE_ORDER) -> typing.Any:
	"""Convert a scalar that was reinterpreted from big-endian disk data into its correct value for a host with the given byte order.

	On a little-endian host the value is byte-swapped, on a big-endian host it is returned unchanged.
	"""

	if byteorder == "little":
		return swap_byte_order(value, fmt)
	else:
		return value


def read_exact(stream: typing.BinaryIO, byte_count: int, what: str = "data") -> bytes:
	"""Read byte_count raw bytes from the stream, without reordering them.

	:param stream: The stream to read from.
	:param byte_count: The number of bytes to read.
	:param what: Description of the data being read, used in error messages.
	:return: The read data, which is exactly ``byte_count`` bytes long.
	:raise StreamNotOpenError: If the stream has been closed.
	:raise ShortReadError: If not enough data could be read from the stream.
	"""

	if getattr(stream, "closed", False):
		raise StreamNotOpenError(f"Cannot read {what}: the stream is closed")

	try:
		data = stream.read(byte_count)
	except OSError as e:
		raise ShortReadError(ShortReadReason.IO_FAILURE, byte_count, 0, what) from e

	if len(data) != byte_count:
		if not data:
			raise ShortReadError(ShortReadReason.END_OF_STREAM, byte_count, 0, what)
		else:
			raise ShortReadError(ShortReadReason.COUNT_MISMATCH, byte_count, len(data), what)

	return data


def read_remaining(stream: typing.BinaryIO, what: str = "data") -> bytes:
	"""Read everything from the current position up to the end of the stream.

	:raise StreamNotOpenError: If the stream has been closed.
	:raise ShortReadError: If reading fails with an :class:`OSError`. The expected byte count is unknown and reported as -1.
	"""

	if getattr(stream, "closed", False):
		raise StreamNotOpenError(f"Cannot read {what}: the stream is closed")

	try:
		return stream.read()
	except OSError as e:
		raise ShortReadError(ShortReadReason.IO_FAILURE, -1, 0, what) from e


def read_primitive(stream: typing.BinaryIO, fmt: str, byte_count: int, *, byteorder: str = NATIVE_BYTE_ORDER, what: str = "integer") -> typing.Any:
	"""Read a single big-endian scalar of byte_count bytes from the stream.

	The bytes are placed at the end of a zero-filled buffer as wide as ``fmt``, so fields narrower than the target type (such as the 3-byte data offsets in reference lists) keep their magnitude. On a little-endian host the whole buffer is reversed before it is reinterpreted in host byte order. The result does not depend on the host byte order, only the way of getting there does.

	The stream position is advanced by exactly ``byte_count`` bytes.

	:param byteorder: The byte order of the host. Defaults to the actual host byte order.
	"""

	st = _scalar_struct(fmt, byteorder)
	if byte_count > st.size:
		raise ValueError(f"Cannot read {byte_count} bytes into a {st.size}-byte {fmt!r} value")

	buffer = bytes(st.size - byte_count) + read_exact(stream, byte_count, what)
	if byteorder == "little":
		buffer = buffer[::-1]

	(value,) = st.unpack(buffer)
	return value
