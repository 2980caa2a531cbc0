"""A pure Python library/tool for extracting resources from classic Macintosh resource forks, including forks embedded at a block offset inside a larger file such as a disk image."""

# To release a new version:
# * Remove the .dev suffix from the version number in this file.
# * Remove the ``dist`` directory (if it exists) to clean up any old release files.
# * Run ``python3 setup.py sdist bdist_wheel`` to build the release files.
# * Run ``python3 -m twine check dist/*`` to check the release files.
# * Commit the changes to master and tag the release commit with the version number, prefixed with a "v".
# * Upload the release files to PyPI using ``python3 -m twine upload dist/*``.

__version__ = "1.0.0"

__all__ = [
	"BlockFile",
	"DEFAULT_BLOCK_SIZE",
	"ErrorKind",
	"ForkHeader",
	"NATIVE_BYTE_ORDER",
	"ReferenceListPointer",
	"ResourceFork",
	"ResourceForkError",
	"ResourceMapInfo",
	"ResourceNotFoundError",
	"ShortReadError",
	"ShortReadReason",
	"SizeMismatchWarning",
	"StreamNotOpenError",
	"TypeNotFoundError",
	"decode_fixed_width",
	"open",
	"swap_byte_order",
	"to_native",
]

from . import api, errors
from ._io_utils import NATIVE_BYTE_ORDER, swap_byte_order, to_native
from .api import DEFAULT_BLOCK_SIZE, BlockFile, ForkHeader, ReferenceListPointer, ResourceFork, ResourceMapInfo, decode_fixed_width
from .errors import ErrorKind, ResourceForkError, ResourceNotFoundError, ShortReadError, ShortReadReason, SizeMismatchWarning, StreamNotOpenError, TypeNotFoundError

# noinspection PyShadowingBuiltins
open = BlockFile.open
