#!/usr/bin/env python3

"""
Pytest coverage for mp3 decoding and the convert pipeline.
"""

# Standard Library
import os
import shutil
import subprocess
import sys
import tempfile
import types

# PIP3 modules
import numpy
import pytest

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

# tests helpers
TESTS_DIR = os.path.abspath(os.path.dirname(__file__))
if TESTS_DIR not in sys.path:
	sys.path.insert(0, TESTS_DIR)
from wav_utils import read_test_wav

# local repo modules
from cutblanclib import fade
from cutblanclib.core import pcm
from cutblanclib.core import settings as settings_lib
from cutblanclib.core import utils
from cutblanclib.core.errors import AudioIOError
from cutblanclib.core.errors import DecodeError
from cutblanclib.media import mp3
from cutblanclib.media import wav

#============================================

AV_TOOLS = ("ffmpeg",)
MISSING_AV_TOOLS = [tool for tool in AV_TOOLS if shutil.which(tool) is None]
HAVE_AV_TOOLS = len(MISSING_AV_TOOLS) == 0
SKIP_AV_REASON = f"missing tools: {', '.join(MISSING_AV_TOOLS)}"

#============================================

def _have_mp3_encoder() -> bool:
	if not HAVE_AV_TOOLS:
		return False
	proc = subprocess.run(["ffmpeg", "-hide_banner", "-encoders"],
		capture_output=True, text=True)
	return "libmp3lame" in proc.stdout

#============================================

def _make_mp3(path: str, sample_rate: int, channels: int, seconds: float) -> None:
	"""
	Generate a short sine tone mp3 with ffmpeg.
	"""
	subprocess.run([
		"ffmpeg", "-y", "-hide_banner", "-loglevel", "error",
		"-f", "lavfi", "-i", f"sine=frequency=440:sample_rate={sample_rate}",
		"-t", f"{seconds}",
		"-ac", str(channels),
		"-c:a", "libmp3lame", "-b:a", "64k",
		path,
	], check=True, capture_output=True)
	return

#============================================

# MPEG-1 layer III, 128 kbit/s, 44100 Hz: 417 byte frames
MONO_44100 = bytes([0xFF, 0xFB, 0x90, 0xC0])
STEREO_44100 = bytes([0xFF, 0xFB, 0x90, 0x00])
# MPEG-2 layer III, 64 kbit/s, 22050 Hz: 208 byte frames
MONO_22050 = bytes([0xFF, 0xF3, 0x80, 0xC0])

#============================================

def _frame(header: bytes) -> bytes:
	length = mp3.parse_frame_header(header)['length']
	return header + bytes(length - 4)

#============================================

def _write_mp3(path: str, headers: list, prefix: bytes = b'') -> bytes:
	"""
	Write a stream of empty frames with the given headers.
	"""
	data = prefix + b''.join(_frame(header) for header in headers)
	with open(path, 'wb') as handle:
		handle.write(data)
	return data

#============================================

def _fake_ffmpeg(monkeypatch, outputs: list) -> list:
	"""
	Replace ffmpeg runs with canned pcm output, one entry per call.
	"""
	calls = []
	pending = list(outputs)
	def fake_run(cmd: list, text: bool = True,
		input_data: bytes = None) -> types.SimpleNamespace:
		calls.append((cmd, input_data))
		return types.SimpleNamespace(stdout=pending.pop(0))
	monkeypatch.setattr(utils, "run_process", fake_run)
	monkeypatch.setattr(utils, "check_dependency", lambda cmd_name: None)
	return calls

#============================================

def _pcm_bytes(values: list) -> bytes:
	return numpy.array(values, dtype='<i2').tobytes()

#============================================

def test_parse_frame_header_layers() -> None:
	assert mp3.parse_frame_header(MONO_44100) == {
		'sample_rate': 44100, 'channels': 1, 'length': 417}
	assert mp3.parse_frame_header(MONO_22050) == {
		'sample_rate': 22050, 'channels': 1, 'length': 208}
	# MPEG-1 layer II, 128 kbit/s, 48000 Hz stereo
	assert mp3.parse_frame_header(bytes([0xFF, 0xFD, 0x84, 0x00])) == {
		'sample_rate': 48000, 'channels': 2, 'length': 384}
	# MPEG-1 layer I, 32 kbit/s, 32000 Hz mono
	assert mp3.parse_frame_header(bytes([0xFF, 0xFF, 0x18, 0xC0])) == {
		'sample_rate': 32000, 'channels': 1, 'length': 48}

#============================================

@pytest.mark.parametrize("header", [
	bytes([0xFF, 0xFB, 0xF0, 0xC0]),
	bytes([0xFF, 0xFB, 0x00, 0xC0]),
	bytes([0xFF, 0xFB, 0x9C, 0xC0]),
	bytes([0xFF, 0xEB, 0x90, 0xC0]),
	bytes([0xFF, 0xF9, 0x90, 0xC0]),
	bytes([0xFE, 0xFB, 0x90, 0xC0]),
	b'ID3',
])
def test_parse_frame_header_rejects(header: bytes) -> None:
	assert mp3.parse_frame_header(header) is None

#============================================

def test_scan_skips_tags_and_junk() -> None:
	id3_tag = b'ID3\x04\x00\x00\x00\x00\x00\x05' + b'\xff\xfb\x90\xc0\x00'
	junk = b'\x00\x12\xff\xfb\x90\xc0\x34'
	data = id3_tag + junk + _frame(MONO_44100) + _frame(MONO_22050)
	frames = mp3.scan_mp3_frames(data)
	assert [frame['offset'] for frame in frames] == [22, 22 + 417]
	assert [frame['sample_rate'] for frame in frames] == [44100, 22050]

#============================================

def test_scan_stops_at_truncated_frame() -> None:
	data = _frame(MONO_44100) + _frame(MONO_44100)[:100]
	frames = mp3.scan_mp3_frames(data)
	assert len(frames) == 1

#============================================

def test_split_format_runs() -> None:
	data = b''.join(_frame(header) for header in
		[MONO_44100, MONO_44100, MONO_22050, STEREO_44100])
	runs = mp3.split_format_runs(mp3.scan_mp3_frames(data))
	assert runs == [
		{'sample_rate': 44100, 'channels': 1, 'start': 0, 'end': 834},
		{'sample_rate': 22050, 'channels': 1, 'start': 834, 'end': 1042},
		{'sample_rate': 44100, 'channels': 2, 'start': 1042, 'end': 1459},
	]

#============================================

def test_decode_single_format_reads_file(monkeypatch) -> None:
	"""
	Ensure a uniform stream is decoded straight from the file at its format.
	"""
	with tempfile.TemporaryDirectory() as temp_dir:
		path = os.path.join(temp_dir, "song.mp3")
		_write_mp3(path, [STEREO_44100] * 3)
		calls = _fake_ffmpeg(monkeypatch, [_pcm_bytes([1, -1, 2, -2, 3])])
		buffer = mp3.decode_mp3(path)
	assert len(calls) == 1
	(cmd, input_data) = calls[0]
	assert cmd[0] == "ffmpeg"
	assert cmd[cmd.index("-i") + 1] == path
	assert cmd[cmd.index("-ar") + 1] == "44100"
	assert cmd[cmd.index("-ac") + 1] == "2"
	assert input_data is None
	assert buffer.sample_rate == 44100
	assert buffer.channels == 2
	# the unfinished trailing frame is dropped
	assert buffer.samples.tolist() == [1, -1, 2, -2]
	assert buffer.samples.dtype == numpy.int16

#============================================

def test_decode_appends_later_rate_unchanged(monkeypatch) -> None:
	"""
	Frames at a second rate are decoded natively and labelled with the first.
	"""
	with tempfile.TemporaryDirectory() as temp_dir:
		path = os.path.join(temp_dir, "song.mp3")
		data = _write_mp3(path, [MONO_44100, MONO_44100, MONO_22050, MONO_22050])
		calls = _fake_ffmpeg(monkeypatch,
			[_pcm_bytes([1, 2, 3, 4]), _pcm_bytes([7, 8])])
		buffer = mp3.decode_mp3(path)
	assert len(calls) == 2
	(first_cmd, first_input) = calls[0]
	(second_cmd, second_input) = calls[1]
	assert first_cmd[first_cmd.index("-i") + 1] == "pipe:0"
	assert first_cmd[first_cmd.index("-ar") + 1] == "44100"
	assert second_cmd[second_cmd.index("-ar") + 1] == "22050"
	assert first_input == data[:834]
	assert second_input == data[834:]
	assert buffer.sample_rate == 44100
	assert buffer.channels == 1
	assert buffer.samples.tolist() == [1, 2, 3, 4, 7, 8]

#============================================

def test_decode_appends_later_channel_count_unchanged(monkeypatch) -> None:
	with tempfile.TemporaryDirectory() as temp_dir:
		path = os.path.join(temp_dir, "song.mp3")
		_write_mp3(path, [STEREO_44100, MONO_44100])
		calls = _fake_ffmpeg(monkeypatch,
			[_pcm_bytes([1, 2, 3, 4]), _pcm_bytes([5, 6, 7])])
		buffer = mp3.decode_mp3(path)
	second_cmd = calls[1][0]
	assert second_cmd[second_cmd.index("-ac") + 1] == "1"
	assert buffer.channels == 2
	# mono samples are interleaved as if stereo, the odd one left is dropped
	assert buffer.samples.tolist() == [1, 2, 3, 4, 5, 6]

#============================================

def test_decode_without_frames(monkeypatch) -> None:
	with tempfile.TemporaryDirectory() as temp_dir:
		path = os.path.join(temp_dir, "song.mp3")
		with open(path, 'wb') as handle:
			handle.write(b'ID3')
		calls = _fake_ffmpeg(monkeypatch, [])
		with pytest.raises(DecodeError):
			mp3.decode_mp3(path)
	assert calls == []

#============================================

def test_decode_with_no_samples(monkeypatch) -> None:
	with tempfile.TemporaryDirectory() as temp_dir:
		path = os.path.join(temp_dir, "song.mp3")
		_write_mp3(path, [MONO_22050])
		_fake_ffmpeg(monkeypatch, [b'\x01'])
		with pytest.raises(DecodeError):
			mp3.decode_mp3(path)

#============================================

def test_decode_missing_file() -> None:
	with tempfile.TemporaryDirectory() as temp_dir:
		with pytest.raises(AudioIOError):
			mp3.decode_mp3(os.path.join(temp_dir, "missing.mp3"))

#============================================

def _canned_decode(monkeypatch, samples: numpy.ndarray, sample_rate: int) -> None:
	def fake_decode(input_file: str) -> pcm.PcmBuffer:
		return pcm.PcmBuffer(samples, sample_rate, 1, 16)
	monkeypatch.setattr(mp3, "decode_mp3", fake_decode)
	return

#============================================

def test_convert_with_canned_decode(monkeypatch) -> None:
	"""
	Convert two seconds of mono audio at 100 Hz into a ten second loop.
	"""
	_canned_decode(monkeypatch, numpy.full(200, 1000, dtype=numpy.int16), 100)
	with tempfile.TemporaryDirectory() as temp_dir:
		output_path = os.path.join(temp_dir, "loop.wav")
		summary = fade.convert_mp3_to_wav("song.mp3", output_path)
		params, samples = read_test_wav(output_path)
	assert summary['output_samples'] == 1000
	assert params.framerate == 100
	assert params.nchannels == 1
	assert params.sampwidth == 2
	assert samples.size == 1000
	# each 200 sample cycle fades in from 0 and out to 10
	assert samples[0] == 0
	assert samples[99] == 990
	assert samples[199] == 10
	assert samples[200] == 0
	assert samples[999] == 10

#============================================

def test_convert_output_depth_from_settings(monkeypatch) -> None:
	_canned_decode(monkeypatch, numpy.full(200, -1000, dtype=numpy.int16), 100)
	settings = settings_lib.build_settings({'output_bits_per_sample': 32})
	with tempfile.TemporaryDirectory() as temp_dir:
		output_path = os.path.join(temp_dir, "loop.wav")
		fade.convert_mp3_to_wav("song.mp3", output_path, settings)
		buffer = wav.read_wav(output_path)
	assert buffer.bits_per_sample == 32
	assert buffer.samples.size == 1000
	assert buffer.samples[100] == -1000

#============================================

@pytest.mark.skipif(not _have_mp3_encoder(), reason=SKIP_AV_REASON + " or libmp3lame")
def test_convert_real_mp3() -> None:
	"""
	Decode a generated mp3 and check the rendered loop format.
	"""
	with tempfile.TemporaryDirectory() as temp_dir:
		input_path = os.path.join(temp_dir, "tone.mp3")
		output_path = os.path.join(temp_dir, "loop.wav")
		_make_mp3(input_path, 22050, 1, 3.0)
		fade.convert_mp3_to_wav(input_path, output_path)
		params, samples = read_test_wav(output_path)
	assert params.framerate == 22050
	assert params.nchannels == 1
	assert params.sampwidth == 2
	assert params.nframes == 220500
	assert samples[0] == 0
	assert numpy.max(numpy.abs(samples)) > 1000
