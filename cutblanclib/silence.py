#!/usr/bin/env python3

"""
Remove long runs of near-silence from a wav file.
"""

# Standard Library
import os

# PIP3 modules
import numpy

# local repo modules
from cutblanclib.core import settings as settings_lib
from cutblanclib.core import utils
from cutblanclib.media import wav

#============================================

def cut_silences(samples, threshold: int = settings_lib.SILENCE_THRESHOLD,
	min_run: int = settings_lib.MIN_SILENCE_RUN,
	flush_trailing: bool = False) -> numpy.ndarray:
	"""
	Drop silent runs of min_run samples or more.

	Samples with abs(value) <= threshold are silent. Each non-silent sample
	closes the run before it: a run shorter than min_run is kept along with
	the closing sample, a longer run is dropped and only the closing sample
	is kept. A run still open at the end of input has no closing sample and
	is dropped whatever its length, unless flush_trailing is set, in which
	case a short trailing run is kept.

	Args:
		samples: Flat interleaved integer samples.
		threshold: Largest absolute value still counted as silence.
		min_run: Run length at which silence is dropped.
		flush_trailing: Keep a trailing run shorter than min_run.

	Returns:
		numpy.ndarray: Retained samples in their original order.
	"""
	values = numpy.asarray(samples)
	if values.size == 0:
		return values.copy()
	loud = numpy.abs(values.astype(numpy.int64)) > threshold
	loud_idxs = numpy.flatnonzero(loud)
	silent_idxs = numpy.flatnonzero(~loud)
	keep = loud.copy()
	if loud_idxs.size == 0:
		if flush_trailing and values.size < min_run:
			keep[:] = True
		return values[keep]
	previous = numpy.concatenate((numpy.array([-1], dtype=numpy.int64), loud_idxs[:-1]))
	run_lengths = loud_idxs - previous - 1
	short_runs = run_lengths < min_run
	# index of the loud sample that closes each silent sample's run
	closer = numpy.searchsorted(loud_idxs, silent_idxs)
	closed = closer < loud_idxs.size
	keep_silent = numpy.zeros(silent_idxs.size, dtype=bool)
	keep_silent[closed] = short_runs[closer[closed]]
	if flush_trailing:
		trailing_run = values.size - int(loud_idxs[-1]) - 1
		if trailing_run < min_run:
			keep_silent[~closed] = True
	keep[silent_idxs] = keep_silent
	return values[keep]

#============================================

def cut_wav(input_file: str, output_file: str, settings: dict = None) -> dict:
	"""
	Trim silences from a wav file and write or append the result.

	Args:
		input_file: Wav input path.
		output_file: Wav output path, appended to when it already exists.
		settings: Optional settings from settings.build_settings().

	Returns:
		dict: Trim summary.
	"""
	if settings is None:
		settings = settings_lib.default_settings()
	print("Opening file...")
	buffer = wav.read_wav(input_file)
	print("Ok!")
	print("Cutting silences...")
	trimmed = cut_silences(buffer.samples, settings['threshold'],
		settings['min_silence_run'], settings['flush_trailing_silence'])
	print("Ok!")
	# the scan is per sample, so multichannel output can end mid-frame
	partial = trimmed.size % buffer.channels
	if partial != 0:
		trimmed = trimmed[:trimmed.size - partial]
	samples_per_second = float(buffer.sample_rate * buffer.channels)
	input_seconds = len(buffer) / samples_per_second
	output_seconds = trimmed.size / samples_per_second
	print(f"from {utils.format_timestamp(input_seconds)} "
		f"to {utils.format_timestamp(output_seconds)} "
		f"({input_seconds:.3f}s to {output_seconds:.3f}s)")
	print("Writing file...")
	append = os.path.isfile(output_file)
	if append:
		print(f"Appends to {output_file}")
	written = wav.write_wav(output_file, trimmed, buffer.spec, append=append)
	print("Done")
	return {
		'input_samples': len(buffer),
		'output_samples': written,
		'input_seconds': input_seconds,
		'output_seconds': output_seconds,
		'appended': append,
		'output_file': output_file,
	}
