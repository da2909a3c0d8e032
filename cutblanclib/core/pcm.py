#!/usr/bin/env python3

import numpy
from cutblanclib.core.errors import CutblancError

#============================================

SUPPORTED_BITS = (8, 16, 32)

#============================================

def make_audio_spec(sample_rate: int, channels: int,
	bits_per_sample: int = 16) -> dict:
	"""
	Build a wav format description.

	Args:
		sample_rate: Samples per second per channel.
		channels: Interleaved channel count.
		bits_per_sample: Integer sample bit depth.

	Returns:
		dict: Audio spec with sample_rate, channels, bits_per_sample, sample_format.
	"""
	sample_rate = int(sample_rate)
	channels = int(channels)
	bits_per_sample = int(bits_per_sample)
	if sample_rate <= 0:
		raise CutblancError("audio sample rate must be positive")
	if channels <= 0:
		raise CutblancError("audio channel count must be positive")
	if bits_per_sample not in SUPPORTED_BITS:
		raise CutblancError(f"unsupported bits per sample: {bits_per_sample}")
	return {
		'sample_rate': sample_rate,
		'channels': channels,
		'bits_per_sample': bits_per_sample,
		'sample_format': 'int',
	}

#============================================

def sample_range(bits_per_sample: int) -> tuple:
	"""Return the (lowest, highest) signed value for a bit depth."""
	high = 2 ** (bits_per_sample - 1) - 1
	return (-high - 1, high)

#============================================

class PcmBuffer():
	def __init__(self, samples, sample_rate: int, channels: int,
		bits_per_sample: int = 16):
		self.spec = make_audio_spec(sample_rate, channels, bits_per_sample)
		self.samples = numpy.asarray(samples)
		if self.samples.ndim != 1:
			raise CutblancError("pcm samples must be a flat interleaved sequence")
		if self.samples.size % self.spec['channels'] != 0:
			raise CutblancError(
				f"pcm sample count {self.samples.size} is not a multiple of "
				f"{self.spec['channels']} channels"
			)

	#============================
	@property
	def sample_rate(self) -> int:
		return self.spec['sample_rate']

	#============================
	@property
	def channels(self) -> int:
		return self.spec['channels']

	#============================
	@property
	def bits_per_sample(self) -> int:
		return self.spec['bits_per_sample']

	#============================
	@property
	def frame_count(self) -> int:
		return self.samples.size // self.channels

	#============================
	@property
	def duration(self) -> float:
		return self.frame_count / float(self.sample_rate)

	#============================
	def __len__(self) -> int:
		return int(self.samples.size)
