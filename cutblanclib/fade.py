#!/usr/bin/env python3

"""
Fade-in/fade-out envelope and loop extension for the mp3 to wav conversion.
"""

# Standard Library
import math

# PIP3 modules
import numpy

# local repo modules
from cutblanclib.core import pcm
from cutblanclib.core import settings as settings_lib
from cutblanclib.core import utils
from cutblanclib.core.errors import CutblancError
from cutblanclib.media import mp3
from cutblanclib.media import wav

#============================================

def fade_frame_count(fade_duration: float, sample_rate: int) -> int:
	return int(math.ceil(fade_duration * sample_rate))

#============================================

def _scale_frames(frames: numpy.ndarray, factors: numpy.ndarray) -> numpy.ndarray:
	scaled = frames.astype(numpy.float64) * factors[:, numpy.newaxis]
	return utils.round_half_away(scaled).astype(numpy.int64)

#============================================

def apply_fade(samples, channels: int, fade_duration: float,
	sample_rate: int) -> numpy.ndarray:
	"""
	Apply a linear fade-in and fade-out to interleaved samples.

	Frame i of the first fade_samples frames is scaled by i / fade_samples,
	frame i of the last fade_samples frames by (total - i) / fade_samples.
	The fade-out runs on the already faded-in values, so when the fades
	overlap both factors apply to the shared frames.

	Args:
		samples: Flat interleaved integer samples.
		channels: Interleaved channel count.
		fade_duration: Fade length in seconds.
		sample_rate: Samples per second per channel.

	Returns:
		numpy.ndarray: Faded samples with the input dtype.
	"""
	values = numpy.asarray(samples)
	if channels <= 0:
		raise CutblancError("channel count must be positive")
	if values.size % channels != 0:
		raise CutblancError("sample count is not a multiple of the channel count")
	fade_samples = fade_frame_count(fade_duration, sample_rate)
	total_frames = values.size // channels
	if fade_samples > total_frames:
		raise CutblancError(
			f"fade of {fade_samples} frames is longer than the audio "
			f"({total_frames} frames)"
		)
	frames = values.astype(numpy.int64).reshape(total_frames, channels)
	if fade_samples == 0:
		return values.copy()
	fade_in = numpy.arange(fade_samples, dtype=numpy.float64) / fade_samples
	frames[:fade_samples] = _scale_frames(frames[:fade_samples], fade_in)
	start = total_frames - fade_samples
	positions = numpy.arange(start, total_frames, dtype=numpy.int64)
	fade_out = (total_frames - positions).astype(numpy.float64) / fade_samples
	frames[start:] = _scale_frames(frames[start:], fade_out)
	# factors stay within [0, 1], so the input dtype still holds every value
	return frames.reshape(-1).astype(values.dtype)

#============================================

def target_sample_count(loop_duration: float, sample_rate: int,
	channels: int) -> int:
	return int(math.ceil(loop_duration * sample_rate * channels))

#============================================

def loop_extend(samples, target_samples: int) -> numpy.ndarray:
	"""
	Repeat samples cyclically until exactly target_samples exist.

	Args:
		samples: Flat interleaved samples.
		target_samples: Output length in samples.

	Returns:
		numpy.ndarray: Looped samples, truncated mid-cycle when needed.
	"""
	values = numpy.asarray(samples)
	if target_samples < 0:
		raise CutblancError("target sample count must be 0 or positive")
	if values.size == 0:
		raise CutblancError("cannot loop an empty buffer")
	repeats = -(-target_samples // values.size)
	return numpy.tile(values, repeats)[:target_samples]

#============================================

def convert_mp3_to_wav(input_file: str, output_file: str,
	settings: dict = None) -> dict:
	"""
	Decode an mp3, fade it in and out, loop it to a fixed length and write a wav.

	Args:
		input_file: Mp3 input path.
		output_file: Wav output path, always created fresh.
		settings: Optional settings from settings.build_settings().

	Returns:
		dict: Conversion summary.
	"""
	if settings is None:
		settings = settings_lib.default_settings()
	buffer = mp3.decode_mp3(input_file)
	print(f"Decoded {len(buffer)} samples, {buffer.sample_rate} Hz, "
		f"{buffer.channels} ch ({buffer.duration:.3f}s)")
	faded = apply_fade(buffer.samples, buffer.channels,
		settings['fade_duration'], buffer.sample_rate)
	target_samples = target_sample_count(settings['loop_duration'],
		buffer.sample_rate, buffer.channels)
	looped = loop_extend(faded, target_samples)
	spec = pcm.make_audio_spec(buffer.sample_rate, buffer.channels,
		settings['output_bits_per_sample'])
	written = wav.write_wav(output_file, looped, spec, append=False)
	print("Conversion completed.")
	return {
		'input_samples': len(buffer),
		'output_samples': written,
		'sample_rate': buffer.sample_rate,
		'channels': buffer.channels,
		'output_file': output_file,
	}
