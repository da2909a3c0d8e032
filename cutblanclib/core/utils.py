#!/usr/bin/env python3

import decimal
import os
import shlex
import shutil
import subprocess
import numpy
from cutblanclib.core.errors import AudioIOError
from cutblanclib.core.errors import DecodeError

#============================================

def run_process(cmd: list, text: bool = True,
	input_data: bytes = None) -> subprocess.CompletedProcess:
	"""
	Run a subprocess command, capturing its output.

	Args:
		cmd: Command list to execute.
		text: Decode stdout and stderr as text when True.
		input_data: Bytes fed to the command on stdin.

	Returns:
		subprocess.CompletedProcess: The completed process.
	"""
	showcmd = shlex.join(cmd)
	print(f"CMD: '{showcmd}'")
	try:
		proc = subprocess.run(cmd, capture_output=True, text=text,
			input=input_data)
	except OSError as exc:
		raise DecodeError(f"command failed to start: {showcmd}: {exc}") from exc
	if proc.returncode != 0:
		stderr_text = proc.stderr
		if not text:
			stderr_text = stderr_text.decode('utf-8', errors='replace')
		raise DecodeError(f"command failed: {showcmd}\n{stderr_text.strip()}")
	return proc

#============================================

def check_dependency(cmd_name: str) -> None:
	if shutil.which(cmd_name) is None:
		raise DecodeError(f"missing dependency: {cmd_name}")
	return

#============================================

def ensure_file_exists(filepath: str) -> None:
	if not os.path.isfile(filepath):
		raise AudioIOError(f"file not found: {filepath}")
	return

#============================================

def round_half_away(values: numpy.ndarray) -> numpy.ndarray:
	"""
	Round to the nearest integer, halves away from zero.

	2.5 becomes 3 and -2.5 becomes -3 (numpy.round gives 2 and -2).

	Args:
		values: Float array.

	Returns:
		numpy.ndarray: Rounded float array.
	"""
	whole = numpy.trunc(values)
	fraction = values - whole
	bump = numpy.where(numpy.abs(fraction) >= 0.5, numpy.sign(values), 0.0)
	return whole + bump

#============================================

def format_timestamp(seconds: float) -> str:
	"""
	Format seconds as HH:MM:SS.mmm using half-up millisecond rounding.
	"""
	value = decimal.Decimal(str(seconds)) * decimal.Decimal(1000)
	total_millis = int(value.quantize(decimal.Decimal("1"),
		rounding=decimal.ROUND_HALF_UP))
	if total_millis < 0:
		total_millis = 0
	hours = total_millis // 3600000
	remainder = total_millis % 3600000
	minutes = remainder // 60000
	remainder = remainder % 60000
	seconds_part = remainder // 1000
	millis_part = remainder % 1000
	return f"{hours:02d}:{minutes:02d}:{seconds_part:02d}.{millis_part:03d}"
