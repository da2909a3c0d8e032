#!/usr/bin/env python3

"""
cutblanc: cut silences from wav files, or turn an mp3 into a looped wav.

Usage:
	cutblanc.py cut input.wav output.wav
	cutblanc.py convert input.mp3 output.wav
"""

# Standard Library
import argparse
import sys

# PIP3 modules
from rich.console import Console
from rich.text import Text

# local repo modules
from cutblanclib import fade
from cutblanclib import silence
from cutblanclib.core.errors import CutblancError

#============================================

ACTIONS = {
	'cut': silence.cut_wav,
	'convert': fade.convert_mp3_to_wav,
}

#============================================

def print_usage() -> None:
	"""
	Print the usage text to standard output.
	"""
	console = Console(highlight=False)
	console.print(Text.assemble(("USAGE", "bold"), ":"))
	console.print(Text.assemble("    ", ("cutblanc", "bold"),
		" [ACTION] [input_file] [output_file]"))
	console.print(Text.assemble(("ACTIONS", "bold"), ":"))
	console.print(Text.assemble("    ", ("- cut", "bold"), "      to cut silences"))
	console.print(Text.assemble("    ", ("- convert", "bold"), "  to convert a mp3 to wav"))
	return

#============================================

class UsageArgumentParser(argparse.ArgumentParser):
	"""
	Argument parser that answers any bad invocation with the usage text and exit 1.
	"""
	def print_help(self, file=None) -> None:
		print_usage()
		return

	def error(self, message: str) -> None:
		print_usage()
		sys.exit(1)

#============================================

def parse_args(argv: list = None) -> argparse.Namespace:
	"""
	Parse command-line arguments.

	Args:
		argv: Arguments after the program name, sys.argv when None.

	Returns:
		argparse.Namespace: action, input_file and output_file.
	"""
	parser = UsageArgumentParser(prog="cutblanc", add_help=False)
	parser.add_argument('action', choices=list(ACTIONS),
		help='cut silences or convert a mp3 to wav')
	parser.add_argument('input_file', help='wav or mp3 file to read')
	parser.add_argument('output_file', help='wav file to write')
	args = parser.parse_args(argv)
	return args

#============================================

def main(argv: list = None) -> None:
	"""
	Main entry point.
	"""
	args = parse_args(argv)
	try:
		ACTIONS[args.action](args.input_file, args.output_file)
	except CutblancError as exc:
		error_console = Console(stderr=True, highlight=False)
		error_console.print(Text(f"Error: {exc}", style="bold red"), soft_wrap=True)
		sys.exit(1)
	return

#============================================

if __name__ == '__main__':
	main()
