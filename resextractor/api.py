import ctypes
import io
import logging
import os
import types
import typing
import warnings

from . import _io_utils
from .errors import ResourceForkError, ResourceNotFoundError, SizeMismatchWarning, StreamNotOpenError, TypeNotFoundError

logger = logging.getLogger(__name__)

# The formats of all following structures are as described in the Inside Macintosh book.
# All integers are big-endian. Offsets are relative to the start of the structure named in the comment, never absolute.

# Resource fork header, found at the start of the fork.
# 4 bytes: Offset from beginning of resource fork to resource data.
# 4 bytes: Offset from beginning of resource fork to resource map.
# 4 bytes: Length of resource data.
# 4 bytes: Length of resource map.
HEADER_FIELD_SIZE = 4

# Resource map header.
# 16 bytes: Reserved for copy of resource header (in memory).
# 4 bytes: Reserved for handle to next resource map to be searched (in memory).
# 2 bytes: Reserved for file reference number (in memory).
# 2 bytes: Resource file attributes. Not interpreted.
# 2 bytes: Offset from beginning of resource map to type list.
# 2 bytes: Offset from beginning of resource map to resource name list.
MAP_RESERVED_SIZE = 16 + 4 + 2 + 2
MAP_OFFSET_SIZE = 2

# Type list header. The type list offset points here, not to the first type entry.
# 2 bytes: Number of resource types in the map minus 1 (signed, -1 if there are no types).
TYPE_LIST_HEADER_SIZE = 2

# A single type in the type list.
# 4 bytes: Resource type code. Usually 4 ASCII characters, but may be any 4 bytes. Case-sensitive.
# 2 bytes: Number of resources of this type minus 1.
# 2 bytes: Offset from beginning of type list to reference list for resources of this type.
TYPE_CODE_SIZE = 4
RESOURCE_COUNT_SIZE = 2
REFERENCE_LIST_OFFSET_SIZE = 2
TYPE_ENTRY_SIZE = 8

# A single resource reference in a reference list.
# 2 bytes: Resource ID (signed).
# 2 bytes: Offset from beginning of resource name list to the resource name, or 0xffff if none.
# 1 byte: Resource attributes. Skipped.
# 3 bytes: Offset from beginning of resource data to the data record for this resource.
# 4 bytes: Reserved for handle to resource (in memory).
REFERENCE_ENTRY_SIZE = 12
RESOURCE_ID_SIZE = 2
NAME_OFFSET_SIZE = 2
ATTRIBUTES_SIZE = 1
DATA_OFFSET_SIZE = 3
RESERVED_HANDLE_SIZE = 4

# Marks a reference without a name.
NO_NAME_OFFSET = 0xffff

# Resource name, not aligned, addressed individually through the reference list.
# 1 byte: Length of following resource name.
NAME_LENGTH_SIZE = 1

# Resource data record.
# 4 bytes: Length of following resource data.
DATA_LENGTH_SIZE = 4

DEFAULT_BLOCK_SIZE = 4096

CT = typing.TypeVar("CT")
ResourceKey = typing.Union[int, bytes]


class ForkHeader(typing.NamedTuple):
	"""The resource fork header, with both offsets already converted to absolute addresses."""

	data_zone_address: int
	map_address: int
	data_length: int
	map_length: int


class ResourceMapInfo(typing.NamedTuple):
	"""The fields of the resource map header that are needed for lookups, with offsets converted to absolute addresses."""

	type_list_address: int
	name_list_address: int
	type_count_minus_one: int


class ReferenceListPointer(typing.NamedTuple):
	count_minus_one: int
	address: int


# Returned by find_reference_list_pointer for types that do not exist.
TYPE_NOT_FOUND_POINTER = ReferenceListPointer(-1, 0)


def decode_fixed_width(data: bytes, shape: typing.Type[CT]) -> CT:
	"""Copy the first ``ctypes.sizeof(shape)`` bytes of data bit for bit into a new instance of the ctypes type shape.

	No byte order conversion is done on any field. Use a :class:`ctypes.BigEndianStructure` as the shape to have ctypes interpret the fields as big-endian, or convert the fields afterwards.

	:raise ValueError: If data is shorter than the shape.
	"""

	width = ctypes.sizeof(shape)
	if len(data) < width:
		raise ValueError(f"Need {width} bytes of data to decode a {shape.__name__}, but only got {len(data)} bytes")

	return shape.from_buffer_copy(data[:width]) # type: ignore


def _check_type_code(type_code: bytes) -> None:
	if not isinstance(type_code, (bytes, bytearray)):
		raise TypeError(f"Type code must be bytes, not {type(type_code).__name__}")
	if len(type_code) != TYPE_CODE_SIZE:
		raise ValueError(f"Type code must be exactly {TYPE_CODE_SIZE} bytes long, not {len(type_code)} bytes: {type_code!r}")


class ResourceFork(object):
	"""A resource fork decoder operating on a byte stream.

	The fork header and resource map header are parsed once, when the decoder is created. Every lookup after that scans the type list and reference list directly from the stream again, nothing is cached.

	The stream is borrowed, not owned: the decoder never closes it, but it does move the stream position during every operation. A decoder must not be used from several threads at once, and the stream should not be used by anyone else while a lookup is running.
	"""

	_stream: typing.BinaryIO
	start_address: int
	parse_error: typing.Optional[ResourceForkError]

	_header: ForkHeader
	_map: ResourceMapInfo

	def __init__(self, stream: typing.BinaryIO, start_address: int = 0) -> None:
		"""Create a decoder for the resource fork starting at start_address in the given stream.

		To read a resource fork from a bytes object, wrap it in an io.BytesIO.

		If the stream is not seekable, all remaining data is read into memory (the resource map is normally stored at the end of the fork). The position the stream is at is then treated as offset 0.

		Reading the header never raises an exception. If it fails, the error is logged and kept in :attr:`parse_error`, and the decoder behaves as if the fork contained no resources at all.
		"""

		super().__init__()

		if start_address < 0:
			raise ValueError(f"Start address cannot be negative: {start_address}")

		self._stream = stream
		self.start_address = start_address
		self.parse_error = None

		try:
			if not getattr(stream, "closed", False) and not stream.seekable():
				self._stream = io.BytesIO(_io_utils.read_remaining(stream, "resource fork"))

			self._header = self._read_header()
			self._map = self._read_map_header()
		except ResourceForkError as e:
			logger.warning("Could not parse resource fork at offset %d, treating it as empty: %s", start_address, e)
			self.parse_error = e
			self._header = ForkHeader(0, 0, 0, 0)
			self._map = ResourceMapInfo(0, 0, -1)

	def _check_open(self) -> None:
		if getattr(self._stream, "closed", False):
			raise StreamNotOpenError("The stream has been closed")

	def _seek(self, address: int) -> None:
		self._check_open()
		self._stream.seek(address)

	def _skip(self, byte_count: int) -> None:
		self._check_open()
		self._stream.seek(byte_count, io.SEEK_CUR)

	def _read_int(self, fmt: str, byte_count: int, what: str) -> int:
		return _io_utils.read_primitive(self._stream, fmt, byte_count, what=what)

	def _read_header(self) -> ForkHeader:
		self._seek(self.start_address)

		data_zone_offset = self._read_int("I", HEADER_FIELD_SIZE, "data offset")
		map_offset = self._read_int("I", HEADER_FIELD_SIZE, "map offset")
		data_length = self._read_int("I", HEADER_FIELD_SIZE, "data length")
		map_length = self._read_int("I", HEADER_FIELD_SIZE, "map length")

		return ForkHeader(self.start_address + data_zone_offset, self.start_address + map_offset, data_length, map_length)

	def _read_map_header(self) -> ResourceMapInfo:
		map_address = self._header.map_address
		self._seek(map_address)
		self._skip(MAP_RESERVED_SIZE)

		type_list_address = map_address + self._read_int("H", MAP_OFFSET_SIZE, "type list offset")
		name_list_address = map_address + self._read_int("H", MAP_OFFSET_SIZE, "name list offset")

		# Normally the type list follows the name list offset directly, but the offset is what counts.
		self._seek(type_list_address)
		type_count_minus_one = self._read_int("h", TYPE_LIST_HEADER_SIZE, "type count")

		return ResourceMapInfo(type_list_address, name_list_address, type_count_minus_one)

	@property
	def header(self) -> ForkHeader:
		return self._header

	@property
	def resource_map(self) -> ResourceMapInfo:
		return self._map

	def _read_type_code(self) -> bytes:
		return _io_utils.read_exact(self._stream, TYPE_CODE_SIZE, "type code")

	def _read_name(self, address: int) -> bytes:
		"""Read the resource name at the given address.

		The stream position is restored afterwards (also if reading fails), so this can be called in the middle of a reference list scan.
		"""

		self._check_open()
		saved_position = self._stream.tell()
		try:
			self._seek(address)
			(name_length,) = _io_utils.read_exact(self._stream, NAME_LENGTH_SIZE, "resource name length")
			return _io_utils.read_exact(self._stream, name_length, "resource name")
		finally:
			self._stream.seek(saved_position)

	def _find_type(self, type_code: bytes) -> typing.Optional[ReferenceListPointer]:
		_check_type_code(type_code)

		if self.parse_error is not None:
			return None

		self._seek(self._map.type_list_address + TYPE_LIST_HEADER_SIZE)
		for _ in range(self._map.type_count_minus_one + 1):
			if self._read_type_code() == type_code:
				count_minus_one = self._read_int("h", RESOURCE_COUNT_SIZE, "resource count")
				reference_list_offset = self._read_int("H", REFERENCE_LIST_OFFSET_SIZE, "reference list offset")
				return ReferenceListPointer(count_minus_one, self._map.type_list_address + reference_list_offset)
			else:
				self._skip(TYPE_ENTRY_SIZE - TYPE_CODE_SIZE)

		logger.debug("Resource type %r not found in type list", type_code)
		return None

	def find_reference_list_pointer(self, type_code: bytes) -> ReferenceListPointer:
		"""Look up the reference list of the given type in the type list.

		:return: The number of resources of this type minus one, and the absolute address of the type's reference list. If the type does not exist, the count is -1 (see :data:`TYPE_NOT_FOUND_POINTER`).
		"""

		pointer = self._find_type(type_code)
		return TYPE_NOT_FOUND_POINTER if pointer is None else pointer

	def get_resource_types(self) -> typing.List[bytes]:
		"""Get the type codes of all types in the type list, in the order in which they are stored."""

		if self.parse_error is not None:
			return []

		type_codes = []
		self._seek(self._map.type_list_address + TYPE_LIST_HEADER_SIZE)
		for _ in range(self._map.type_count_minus_one + 1):
			type_codes.append(self._read_type_code())
			self._skip(TYPE_ENTRY_SIZE - TYPE_CODE_SIZE)

		return type_codes

	def _read_data_address(self) -> int:
		return self._header.data_zone_address + self._read_int("I", DATA_OFFSET_SIZE, "resource data offset")

	def _find_address_by_id(self, pointer: ReferenceListPointer, resource_id: int) -> typing.Optional[int]:
		if pointer.count_minus_one < 0:
			return None

		self._seek(pointer.address)
		for _ in range(pointer.count_minus_one + 1):
			if self._read_int("h", RESOURCE_ID_SIZE, "resource ID") == resource_id:
				self._skip(NAME_OFFSET_SIZE + ATTRIBUTES_SIZE)
				return self._read_data_address()
			else:
				self._skip(REFERENCE_ENTRY_SIZE - RESOURCE_ID_SIZE)

		return None

	def _find_address_by_name(self, pointer: ReferenceListPointer, name: bytes) -> typing.Optional[int]:
		if pointer.count_minus_one < 0:
			return None

		self._seek(pointer.address)
		for _ in range(pointer.count_minus_one + 1):
			self._skip(RESOURCE_ID_SIZE)
			name_offset = self._read_int("H", NAME_OFFSET_SIZE, "resource name offset")

			if name_offset != NO_NAME_OFFSET and self._read_name(self._map.name_list_address + name_offset) == name:
				self._skip(ATTRIBUTES_SIZE)
				return self._read_data_address()
			else:
				self._skip(ATTRIBUTES_SIZE + DATA_OFFSET_SIZE + RESERVED_HANDLE_SIZE)

		return None

	def find_resource_address(self, type_code: bytes, key: ResourceKey) -> int:
		"""Find the absolute address of the data record of a resource.

		:param type_code: The 4-byte type code of the resource.
		:param key: The resource ID (an int) or the resource name (bytes). Names are compared exactly, including case.
		:raise TypeNotFoundError: If there are no resources of the given type.
		:raise ResourceNotFoundError: If the type exists, but has no resource with the given key.
		"""

		if isinstance(key, int):
			desc = f"ID {key}"
		elif isinstance(key, (bytes, bytearray)):
			desc = f"name {bytes(key)!r}"
		else:
			raise TypeError(f"Resource key must be an int ID or a bytes name, not {type(key).__name__}")

		pointer = self._find_type(type_code)
		if pointer is None:
			raise TypeNotFoundError(f"Could not find resource type {type_code!r}")

		if isinstance(key, int):
			address = self._find_address_by_id(pointer, key)
		else:
			address = self._find_address_by_name(pointer, bytes(key))

		if address is None:
			logger.debug("No %r resource with %s", type_code, desc)
			raise ResourceNotFoundError(f"Could not find {type_code!r} resource with {desc}")

		return address

	def get_resource_ids(self, type_code: bytes) -> typing.List[int]:
		"""Get the IDs of all resources of the given type, in the order in which they are stored (not sorted).

		If the type does not exist, the list is empty.
		"""

		pointer = self.find_reference_list_pointer(type_code)
		if pointer.count_minus_one < 0:
			return []

		ids = []
		self._seek(pointer.address)
		for _ in range(pointer.count_minus_one + 1):
			ids.append(self._read_int("h", RESOURCE_ID_SIZE, "resource ID"))
			self._skip(REFERENCE_ENTRY_SIZE - RESOURCE_ID_SIZE)

		return ids

	def get_resource_names(self, type_code: bytes) -> typing.List[typing.Optional[bytes]]:
		"""Get the names of all resources of the given type, in the order in which they are stored (not sorted).

		Resources without a name are represented by None. If the type does not exist, the list is empty.
		"""

		pointer = self.find_reference_list_pointer(type_code)
		if pointer.count_minus_one < 0:
			return []

		names: typing.List[typing.Optional[bytes]] = []
		self._seek(pointer.address)
		for _ in range(pointer.count_minus_one + 1):
			self._skip(RESOURCE_ID_SIZE)
			name_offset = self._read_int("H", NAME_OFFSET_SIZE, "resource name offset")

			if name_offset == NO_NAME_OFFSET:
				names.append(None)
			else:
				names.append(self._read_name(self._map.name_list_address + name_offset))

			self._skip(ATTRIBUTES_SIZE + DATA_OFFSET_SIZE + RESERVED_HANDLE_SIZE)

		return names

	def _read_data_length(self, address: int) -> int:
		self._seek(address)
		return self._read_int("I", DATA_LENGTH_SIZE, "resource data length")

	def get_resource_data(self, type_code: bytes, key: ResourceKey) -> typing.Tuple[bytes, int]:
		"""Read the raw data of a resource.

		:param type_code: The 4-byte type code of the resource.
		:param key: The resource ID (an int) or the resource name (bytes).
		:return: The resource data and its length, as stored in the resource data record.
		:raise ResourceNotFoundError: If there is no such resource (:class:`TypeNotFoundError` if the type does not exist at all).
		:raise ShortReadError: If the data record extends past the end of the stream.
		"""

		length = self._read_data_length(self.find_resource_address(type_code, key))
		return _io_utils.read_exact(self._stream, length, "resource data"), length

	def get_resource(self, type_code: bytes, key: ResourceKey, shape: typing.Type[CT]) -> CT:
		"""Read a resource as a fixed-size value of the ctypes type shape.

		Exactly ``ctypes.sizeof(shape)`` bytes are read after the data record's length field, no matter what the length field says. If the two sizes differ, a :class:`SizeMismatchWarning` is issued, but the value is returned anyway, because resource data is often padded.

		The bytes are copied into the new value as they are (see :func:`decode_fixed_width`), the caller is responsible for the byte order of its fields.
		"""

		width = ctypes.sizeof(shape)
		length = self._read_data_length(self.find_resource_address(type_code, key))
		data = _io_utils.read_exact(self._stream, width, "resource data")

		if length != width:
			warnings.warn(SizeMismatchWarning(f"Size of resource {type_code!r} ({key!r}) is {length} bytes, but {shape.__name__} is {width} bytes"), stacklevel=2)

		return decode_fixed_width(data, shape)

	def __repr__(self) -> str:
		if self.parse_error is not None:
			contents = f"unparseable ({self.parse_error})"
		else:
			contents = f"{self._map.type_count_minus_one + 1} resource types"
		return f"<{type(self).__module__}.{type(self).__qualname__} at offset {self.start_address}, {contents}>"


class BlockFile(typing.ContextManager["BlockFile"]):
	"""A file divided into fixed-size blocks, which contains resource forks starting at block boundaries (such as a disk image).

	The BlockFile owns the stream. Resource forks loaded from it share the stream and must not be used after the BlockFile has been closed.
	"""

	_close_stream: bool
	_stream: typing.BinaryIO
	block_size: int

	@classmethod
	def open(cls, filename: typing.Union[str, os.PathLike], *, block_size: int = DEFAULT_BLOCK_SIZE) -> "BlockFile":
		"""Open the file at the given path as a BlockFile. The file is closed when the BlockFile is closed."""

		f = open(filename, "rb")
		try:
			return cls(f, block_size=block_size, close=True)
		except BaseException:
			f.close()
			raise

	def __init__(self, stream: typing.BinaryIO, *, block_size: int = DEFAULT_BLOCK_SIZE, close: bool = False) -> None:
		"""Create a BlockFile wrapping the given byte stream.

		close controls whether the stream should be closed when the BlockFile's close method is called. By default this is False.
		"""

		super().__init__()

		if block_size <= 0:
			raise ValueError(f"Block size must be positive, not {block_size}")

		self._close_stream = close
		self._stream = stream
		self.block_size = block_size

	def load_resource_fork(self, first_block: int = 0) -> ResourceFork:
		"""Create a decoder for the resource fork that starts at the given block."""

		if first_block < 0:
			raise ValueError(f"First block cannot be negative: {first_block}")

		return ResourceFork(self._stream, first_block * self.block_size)

	def close(self) -> None:
		"""Close this BlockFile.

		If close=True was passed when this BlockFile was created, the underlying stream's close method is called as well.
		"""

		if self._close_stream:
			self._stream.close()

	def __enter__(self) -> "BlockFile":
		return self

	def __exit__(
		self,
		exc_type: typing.Optional[typing.Type[BaseException]],
		exc_val: typing.Optional[BaseException],
		exc_tb: typing.Optional[types.TracebackType]
	) -> typing.Optional[bool]:
		self.close()
		return None

	def __repr__(self) -> str:
		return f"<{type(self).__module__}.{type(self).__qualname__} at {id(self):#x}, block size {self.block_size}>"
