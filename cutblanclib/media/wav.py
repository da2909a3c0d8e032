#!/usr/bin/env python3

"""
Whole-file wav reading and writing on top of the standard library wave module.

Samples move in and out as flat interleaved numpy integer arrays. Writing
supports fresh creation and appending in place to an existing file whose
format matches exactly.
"""

# Standard Library
import os
import struct
import wave

# PIP3 modules
import numpy

# local repo modules
from cutblanclib.core import pcm
from cutblanclib.core.errors import AudioIOError
from cutblanclib.core.errors import CutblancError
from cutblanclib.core.errors import DecodeError
from cutblanclib.core.errors import FormatMismatchError
from cutblanclib.core.errors import WriteError

#============================================

READ_DTYPES = {
	1: numpy.dtype('u1'),
	2: numpy.dtype('<i2'),
	4: numpy.dtype('<i4'),
}

#============================================

def _open_for_read(audio_path: str) -> wave.Wave_read:
	try:
		return wave.open(audio_path, 'rb')
	except FileNotFoundError as exc:
		raise AudioIOError(f"file not found: {audio_path}") from exc
	except (wave.Error, EOFError) as exc:
		raise DecodeError(f"not a readable pcm wav file: {audio_path}: {exc}") from exc
	except OSError as exc:
		raise AudioIOError(f"cannot open {audio_path}: {exc}") from exc

#============================================

def _spec_from_handle(wav_handle: wave.Wave_read, audio_path: str) -> dict:
	sample_width = wav_handle.getsampwidth()
	if sample_width not in READ_DTYPES:
		raise DecodeError(
			f"unsupported wav sample width {sample_width * 8} bits: {audio_path}"
		)
	try:
		return pcm.make_audio_spec(wav_handle.getframerate(),
			wav_handle.getnchannels(), sample_width * 8)
	except CutblancError as exc:
		raise DecodeError(f"invalid wav header in {audio_path}: {exc}") from exc

#============================================

def read_wav_spec(audio_path: str) -> dict:
	"""
	Read only the format of a wav file.

	Args:
		audio_path: Wav file path.

	Returns:
		dict: Audio spec of the file.
	"""
	with _open_for_read(audio_path) as wav_handle:
		spec = _spec_from_handle(wav_handle, audio_path)
	return spec

#============================================

def read_wav(audio_path: str) -> pcm.PcmBuffer:
	"""
	Read a whole wav file into memory.

	8-bit unsigned samples are re-centred around zero, so every depth comes
	back as signed int32 values. A trailing partial frame is dropped.

	Args:
		audio_path: Wav file path.

	Returns:
		pcm.PcmBuffer: Decoded samples.
	"""
	with _open_for_read(audio_path) as wav_handle:
		spec = _spec_from_handle(wav_handle, audio_path)
		try:
			data = wav_handle.readframes(wav_handle.getnframes())
		except (wave.Error, EOFError) as exc:
			raise DecodeError(f"corrupt wav data in {audio_path}: {exc}") from exc
	sample_width = spec['bits_per_sample'] // 8
	channels = spec['channels']
	usable_bytes = len(data) - (len(data) % (sample_width * channels))
	samples = numpy.frombuffer(data[:usable_bytes], dtype=READ_DTYPES[sample_width])
	if sample_width == 1:
		samples = samples.astype(numpy.int16) - 128
	samples = samples.astype(numpy.int32)
	return pcm.PcmBuffer(samples, spec['sample_rate'], channels,
		spec['bits_per_sample'])

#============================================

def encode_samples(samples: numpy.ndarray, spec: dict) -> bytes:
	"""
	Encode signed integer samples as little-endian wav frame bytes.

	Args:
		samples: Flat interleaved integer samples.
		spec: Target audio spec.

	Returns:
		bytes: Raw frame data.
	"""
	values = numpy.asarray(samples)
	if values.size == 0:
		return b''
	if not numpy.issubdtype(values.dtype, numpy.integer):
		raise WriteError(f"samples must be integers, got {values.dtype}")
	bits = spec['bits_per_sample']
	(low, high) = pcm.sample_range(bits)
	values = values.astype(numpy.int64)
	lowest = int(values.min())
	highest = int(values.max())
	if lowest < low or highest > high:
		raise WriteError(
			f"sample value out of range for {bits}-bit pcm: "
			f"min {lowest}, max {highest}"
		)
	if bits == 8:
		return (values + 128).astype(numpy.uint8).tobytes()
	if bits == 16:
		return values.astype('<i2').tobytes()
	return values.astype('<i4').tobytes()

#============================================

def _write_frames(wav_path: str, spec: dict, data: bytes) -> None:
	with wave.open(wav_path, 'wb') as wav_handle:
		wav_handle.setnchannels(spec['channels'])
		wav_handle.setsampwidth(spec['bits_per_sample'] // 8)
		wav_handle.setframerate(spec['sample_rate'])
		wav_handle.writeframes(data)
	return

#============================================

def _find_data_chunk(wav_file, wav_path: str) -> tuple:
	"""
	Walk the RIFF chunks up to the data chunk.

	Args:
		wav_file: Binary file object positioned anywhere.
		wav_path: Path used in error messages.

	Returns:
		tuple: (offset of the data size field, declared data size).
	"""
	wav_file.seek(0)
	riff_header = wav_file.read(12)
	if len(riff_header) < 12 or riff_header[:4] != b'RIFF' or riff_header[8:] != b'WAVE':
		raise DecodeError(f"not a riff wave file: {wav_path}")
	while True:
		chunk_header = wav_file.read(8)
		if len(chunk_header) < 8:
			raise DecodeError(f"no data chunk in {wav_path}")
		(chunk_size,) = struct.unpack('<I', chunk_header[4:])
		if chunk_header[:4] == b'data':
			return (wav_file.tell() - 4, chunk_size)
		wav_file.seek(chunk_size + (chunk_size % 2), os.SEEK_CUR)

#============================================

def _append_in_place(wav_path: str, spec: dict, data: bytes) -> None:
	frame_bytes = (spec['bits_per_sample'] // 8) * spec['channels']
	with open(wav_path, 'r+b') as wav_file:
		(size_offset, declared_size) = _find_data_chunk(wav_file, wav_path)
		data_start = size_offset + 4
		file_size = wav_file.seek(0, os.SEEK_END)
		stored_size = min(declared_size, file_size - data_start)
		if file_size > data_start + stored_size + (stored_size % 2):
			raise WriteError(
				f"cannot append to {wav_path}: chunks follow the audio data"
			)
		# a trailing partial frame is overwritten by the new samples
		kept_size = stored_size - (stored_size % frame_bytes)
		new_size = kept_size + len(data)
		if data_start + new_size + (new_size % 2) - 8 > 0xFFFFFFFF:
			raise WriteError(f"cannot append to {wav_path}: wav would exceed 4 GiB")
		wav_file.seek(data_start + kept_size)
		wav_file.write(data)
		if new_size % 2 == 1:
			wav_file.write(b'\x00')
		wav_file.truncate()
		riff_size = wav_file.tell() - 8
		wav_file.seek(size_offset)
		wav_file.write(struct.pack('<I', new_size))
		wav_file.seek(4)
		wav_file.write(struct.pack('<I', riff_size))
	return

#============================================

def write_wav(wav_path: str, samples, spec: dict, append: bool = False) -> int:
	"""
	Write samples to a wav file, creating it or appending to it.

	Appending requires the existing file's format to equal spec exactly and
	the data chunk to be the last chunk. The new frames are written after the
	existing ones and the RIFF and data sizes are patched in place. All checks
	happen before the file is touched.

	Args:
		wav_path: Output wav path.
		samples: Flat interleaved integer samples.
		spec: Audio spec describing the samples.
		append: Append to the existing file at wav_path.

	Returns:
		int: Number of samples written.
	"""
	values = numpy.asarray(samples)
	if values.size % spec['channels'] != 0:
		raise WriteError(
			f"sample count {values.size} is not a multiple of "
			f"{spec['channels']} channels"
		)
	data = encode_samples(values, spec)
	if not append:
		try:
			_write_frames(wav_path, spec, data)
		except OSError as exc:
			raise AudioIOError(f"cannot write {wav_path}: {exc}") from exc
		return int(values.size)
	existing_spec = read_wav_spec(wav_path)
	if existing_spec != spec:
		raise FormatMismatchError(
			f"cannot append to {wav_path}: file is "
			f"{describe_spec(existing_spec)}, data is {describe_spec(spec)}"
		)
	try:
		_append_in_place(wav_path, spec, data)
	except OSError as exc:
		raise AudioIOError(f"cannot append to {wav_path}: {exc}") from exc
	return int(values.size)

#============================================

def describe_spec(spec: dict) -> str:
	return (
		f"{spec['sample_rate']} Hz, {spec['channels']} ch, "
		f"{spec['bits_per_sample']}-bit {spec['sample_format']}"
	)
