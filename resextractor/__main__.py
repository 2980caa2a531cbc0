import argparse
import logging
import pathlib
import sys
import textwrap
import typing

from . import __version__, api, errors

# Type codes and resource names are MacRoman, both in output and when given as arguments.
_TEXT_ENCODING = "MacRoman"

# Translation table to replace ASCII non-printable characters with periods.
_TRANSLATE_NONPRINTABLES = {k: "." for k in [*range(0x20), 0x7f]}

logger = logging.getLogger(__name__)


def is_printable(char: str) -> bool:
	"""Printable characters are shown as they are in escaped type codes and names. The Apple logo (U+F8FF in MacRoman) counts as printable."""

	return char.isprintable() or char == "\uf8ff"

def bytes_unescape(string: str) -> bytes:
	"""Convert a string containing text (in _TEXT_ENCODING) and hex escapes to a bytestring."""

	out: typing.List[int] = []
	it = iter(string)
	for char in it:
		if char == "\\":
			try:
				esc = next(it)
				if esc in "\\\'\"":
					out.extend(esc.encode(_TEXT_ENCODING))
				elif esc == "x":
					x1, x2 = next(it), next(it)
					out.append(int(x1+x2, 16))
				else:
					raise ValueError(f"Unknown escape character: {esc}")
			except StopIteration:
				raise ValueError("End of string in escape sequence")
		else:
			out.extend(char.encode(_TEXT_ENCODING))

	return bytes(out)

def bytes_escape(bs: bytes, *, quote: typing.Optional[str] = None) -> str:
	"""Convert a bytestring to a string (using _TEXT_ENCODING), with non-printable characters hex-escaped."""

	out = []
	for byte, char in zip(bs, bs.decode(_TEXT_ENCODING)):
		if char in {quote, "\\"}:
			out.append(f"\\{char}")
		elif is_printable(char):
			out.append(char)
		else:
			out.append(f"\\x{byte:02x}")

	return "".join(out)

def describe_resource(type_code: bytes, key: api.ResourceKey) -> str:
	if isinstance(key, int):
		key_desc = str(key)
	else:
		key_desc = f'"{bytes_escape(key, quote=chr(34))}"'
	return f"'{bytes_escape(type_code, quote=chr(39))}' ({key_desc})"

def hexdump(data: bytes) -> None:
	last_line = None
	asterisk_shown = False
	for i in range(0, len(data), 16):
		line = data[i:i + 16]
		# If the same 16-byte lines appear multiple times, print only the first one, and replace all further lines with a single line with an asterisk.
		if line == last_line:
			if not asterisk_shown:
				print("*")
				asterisk_shown = True
		else:
			line_hex_left = " ".join(f"{byte:02x}" for byte in line[:8])
			line_hex_right = " ".join(f"{byte:02x}" for byte in line[8:])
			line_char = line.decode(_TEXT_ENCODING).translate(_TRANSLATE_NONPRINTABLES)
			print(f"{i:08x}  {line_hex_left:<{8*2+7}}  {line_hex_right:<{8*2+7}}  |{line_char}|")
			asterisk_shown = False
		last_line = line

	if data:
		print(f"{len(data):08x}")

def grouped_hexdump(data: bytes) -> None:
	"""Print data as bare hex bytes, 16 per line, split into groups of 8."""

	for i in range(0, len(data), 16):
		line = data[i:i + 16]
		print("  ".join(" ".join(f"{byte:02x}" for byte in line[j:j + 8]) for j in range(0, len(line), 8)))


def make_argument_parser(*, description: str, **kwargs: typing.Any) -> argparse.ArgumentParser:
	"""Create the ArgumentParser shared by the main command and all subcommands, with only a long --help option."""

	ap = argparse.ArgumentParser(
		formatter_class=argparse.RawDescriptionHelpFormatter,
		description=description,
		allow_abbrev=False,
		add_help=False,
		**kwargs,
	)

	ap.add_argument("--help", action="help", help="Display this help message and exit")

	return ap

def add_fork_args(ap: argparse.ArgumentParser) -> None:
	"""Define common options/arguments for locating the resource fork.

	This includes a positional argument for the input file's path, and the ``--block-size`` and ``--start-block`` options to locate the fork inside that file.
	"""

	ap.add_argument("--block-size", type=int, default=api.DEFAULT_BLOCK_SIZE, help="The size of a block in the input file, in bytes. Default: %(default)s")
	ap.add_argument("--start-block", type=int, default=0, help="The block at which the resource fork starts. Default: %(default)s")
	ap.add_argument("file", help="The file containing the resource fork (a .rsrc file or a disk image), or - for stdin.")

def parse_type_code(ap: argparse.ArgumentParser, string: str) -> bytes:
	try:
		type_code = bytes_unescape(string)
	except ValueError as e:
		ap.error(f"Invalid type code {string!r}: {e}")

	if len(type_code) != 4:
		ap.error(f"Type code must be exactly 4 bytes long, not {len(type_code)} bytes: {string!r}")

	return type_code

def open_block_file(ap: argparse.ArgumentParser, ns: argparse.Namespace) -> api.BlockFile:
	"""Open the input file given on the command line, using the block size given on the command line."""

	if ns.block_size <= 0:
		ap.error(f"Block size must be positive, not {ns.block_size}")
	if ns.start_block < 0:
		ap.error(f"Start block cannot be negative: {ns.start_block}")

	if ns.file == "-":
		return api.BlockFile(sys.stdin.buffer, block_size=ns.block_size)

	try:
		return api.BlockFile.open(ns.file, block_size=ns.block_size)
	except OSError as e:
		print(f"{ap.prog}: Cannot open input file: {e}", file=sys.stderr)
		sys.exit(1)

def load_resource_fork(ap: argparse.ArgumentParser, bf: api.BlockFile, ns: argparse.Namespace) -> api.ResourceFork:
	rf = bf.load_resource_fork(ns.start_block)
	if rf.parse_error is not None:
		print(f"{ap.prog}: Not a valid resource fork at offset {rf.start_address}: {rf.parse_error}", file=sys.stderr)
		sys.exit(1)
	return rf


def do_read(prog: str, args: typing.List[str]) -> typing.NoReturn:
	"""Extract the data of a single resource."""

	ap = make_argument_parser(
		prog=prog,
		description="""
Extract the data of a single resource, selected by type code and either ID or
name. The data is printed to stdout, or written to a file with --output.
""",
	)

	ap.add_argument("--format", choices=["dump", "hex", "raw"], default="dump", help="How to output the data: human-readable hex dump (dump), hex bytes only (hex), or raw bytes (raw). Ignored with --output. Default: %(default)s")
	ap.add_argument("--output", help="Write the raw resource data to this file instead of printing it.")
	ap.add_argument("--name", help="Select the resource by name instead of by ID. Names are case-sensitive.")
	add_fork_args(ap)
	ap.add_argument("type", help="The type code of the resource, e. g. ICON or 'STR\\x20'.")
	ap.add_argument("id", nargs="?", type=int, help="The ID of the resource.")

	ns = ap.parse_args(args)

	if (ns.id is None) == (ns.name is None):
		ap.error("Exactly one of a resource ID or --name must be given")

	type_code = parse_type_code(ap, ns.type)
	key: api.ResourceKey
	if ns.name is not None:
		try:
			key = bytes_unescape(ns.name)
		except ValueError as e:
			ap.error(f"Invalid name {ns.name!r}: {e}")
	else:
		key = ns.id

	with open_block_file(ap, ns) as bf:
		rf = load_resource_fork(ap, bf, ns)
		try:
			data, length = rf.get_resource_data(type_code, key)
		except errors.ResourceForkError as e:
			print(f"{prog}: {e}", file=sys.stderr)
			sys.exit(1)

	if ns.output is not None:
		try:
			with open(ns.output, "wb") as f:
				f.write(data)
		except OSError as e:
			print(f"{prog}: Cannot write output file: {e}", file=sys.stderr)
			sys.exit(1)
	elif ns.format == "dump":
		print(f"Resource {describe_resource(type_code, key)}, {length} bytes:")
		hexdump(data)
	elif ns.format == "hex":
		grouped_hexdump(data)
	elif ns.format == "raw":
		sys.stdout.buffer.write(data)
	else:
		raise AssertionError(f"Unhandled --format: {ns.format!r}")

	sys.exit(0)

def do_list(prog: str, args: typing.List[str]) -> typing.NoReturn:
	"""List the IDs and names of all resources of a type."""

	ap = make_argument_parser(
		prog=prog,
		description="""
List the IDs and names of all resources of a type, in the order in which they
are stored in the resource map.
""",
	)
	add_fork_args(ap)
	ap.add_argument("type", help="The type code of the resources to list.")

	ns = ap.parse_args(args)
	type_code = parse_type_code(ap, ns.type)

	with open_block_file(ap, ns) as bf:
		rf = load_resource_fork(ap, bf, ns)
		if type_code not in rf.get_resource_types():
			print(f"{prog}: No resources of type '{bytes_escape(type_code, quote=chr(39))}'", file=sys.stderr)
			sys.exit(1)

		ids = rf.get_resource_ids(type_code)
		names = rf.get_resource_names(type_code)

	for resource_id, name in zip(ids, names):
		if name is None:
			print(describe_resource(type_code, resource_id))
		else:
			print(f"{describe_resource(type_code, resource_id)}, name \"{bytes_escape(name, quote=chr(34))}\"")

	sys.exit(0)

def do_types(prog: str, args: typing.List[str]) -> typing.NoReturn:
	"""List all resource types in the resource fork."""

	ap = make_argument_parser(
		prog=prog,
		description="""
List the type codes of all resource types in the resource fork, together with
the number of resources of each type.
""",
	)
	add_fork_args(ap)

	ns = ap.parse_args(args)

	with open_block_file(ap, ns) as bf:
		rf = load_resource_fork(ap, bf, ns)
		for type_code in rf.get_resource_types():
			count = rf.find_reference_list_pointer(type_code).count_minus_one + 1
			print(f"'{bytes_escape(type_code, quote=chr(39))}': {count} resource{'' if count == 1 else 's'}")

	sys.exit(0)

def do_info(prog: str, args: typing.List[str]) -> typing.NoReturn:
	"""Display technical information about the resource fork."""

	ap = make_argument_parser(
		prog=prog,
		description="""
Display the addresses and lengths stored in the resource fork's header and map.
All addresses are absolute offsets in the input file.
""",
	)
	add_fork_args(ap)

	ns = ap.parse_args(args)

	with open_block_file(ap, ns) as bf:
		rf = load_resource_fork(ap, bf, ns)
		header = rf.header
		resource_map = rf.resource_map

	print(f"Resource fork start: {rf.start_address:#x}")
	print(f"Resource data: address {header.data_zone_address:#x}, length {header.data_length:#x}")
	print(f"Resource map: address {header.map_address:#x}, length {header.map_length:#x}")
	print(f"Type list address: {resource_map.type_list_address:#x}")
	print(f"Name list address: {resource_map.name_list_address:#x}")
	print(f"Number of types: {resource_map.type_count_minus_one + 1}")

	sys.exit(0)


SUBCOMMANDS = {
	"read": do_read,
	"list": do_list,
	"types": do_types,
	"info": do_info,
}


def format_subcommands_help() -> str:
	"""List the subcommands with their one-line descriptions, for the epilog of the main --help output."""

	# Only used for formatting, never for parsing.
	fake_ap = argparse.ArgumentParser(
		usage=argparse.SUPPRESS,
		epilog=textwrap.dedent("""
		Most of the above subcommands take additional arguments. Run a subcommand with
		the option --help for help about the options understood by that subcommand.
		"""),
		add_help=False,
		formatter_class=argparse.RawDescriptionHelpFormatter,
	)

	fake_group = fake_ap.add_argument_group(title="subcommands")

	for name, func in SUBCOMMANDS.items():
		fake_group.add_argument(name, help=func.__doc__)

	return fake_ap.format_help()


def main() -> typing.NoReturn:
	"""Main function of the CLI.

	This function is a valid setuptools entry point. Arguments are passed in sys.argv, and every execution path ends with a sys.exit call.
	"""

	prog = pathlib.PurePath(sys.argv[0]).name
	args = sys.argv[1:]

	# Only the subcommand name is parsed here, each do_* function parses its own arguments.

	ap = make_argument_parser(
		prog=prog,
		usage=f"{prog} (--help | --version | [--debug] subcommand ...)",
		description="""
%(prog)s extracts resources from Classic Mac OS resource forks, either stored
in a file of their own (.rsrc) or starting at a block boundary inside a larger
file such as an HFS disk image. Resource forks can only be read, not written.
""",
		epilog=format_subcommands_help(),
	)

	ap.add_argument("--version", action="version", version=__version__, help="Display version information and exit.")
	ap.add_argument("--debug", action="store_true", help="Log details about how the resource fork is scanned.")

	ap.add_argument("subcommand", help=argparse.SUPPRESS)
	ap.add_argument("args", nargs=argparse.REMAINDER, help=argparse.SUPPRESS)

	if not args:
		print(f"{prog}: Missing subcommand.", file=sys.stderr)
		ap.print_help()
		sys.exit(2)

	ns = ap.parse_args(args)

	# Diagnostics from the library (including size mismatch warnings) go to stderr.
	logging.basicConfig(format="%(levelname)s: %(name)s: %(message)s", level=logging.DEBUG if ns.debug else logging.WARNING)
	logging.captureWarnings(True)

	try:
		subcommand_func = SUBCOMMANDS[ns.subcommand]
	except KeyError:
		print(f"{prog}: Unknown subcommand: {ns.subcommand}", file=sys.stderr)
		print(f"Run {prog} --help for a list of available subcommands.", file=sys.stderr)
		sys.exit(2)
	else:
		logger.debug("Running subcommand %s with arguments %r", ns.subcommand, ns.args)
		subcommand_func(f"{prog} {ns.subcommand}", ns.args)

if __name__ == "__main__":
	sys.exit(main())
