#!/usr/bin/env python3

"""
Mp3 decoding through ffmpeg.

The stream is split into runs of frames sharing one sample rate and channel
count. Each run is decoded at its own format and the raw samples of all runs
are joined under the format of the first frame.
"""

import numpy
from cutblanclib.core import pcm
from cutblanclib.core import utils
from cutblanclib.core.errors import AudioIOError
from cutblanclib.core.errors import DecodeError

#============================================

# version bits -> (name, sample rates by index)
MPEG_VERSIONS = {
	3: ('1', (44100, 48000, 32000)),
	2: ('2', (22050, 24000, 16000)),
	0: ('2.5', (11025, 12000, 8000)),
}

# kbit/s by bitrate index, index 0 (free format) and 15 are not usable
BITRATES = {
	('1', 1): (0, 32, 64, 96, 128, 160, 192, 224, 256, 288, 320, 352, 384, 416, 448),
	('1', 2): (0, 32, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320, 384),
	('1', 3): (0, 32, 40, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320),
	('2', 1): (0, 32, 48, 56, 64, 80, 96, 112, 128, 144, 160, 176, 192, 224, 256),
	('2', 2): (0, 8, 16, 24, 32, 40, 48, 56, 64, 80, 96, 112, 128, 144, 160),
	('2', 3): (0, 8, 16, 24, 32, 40, 48, 56, 64, 80, 96, 112, 128, 144, 160),
}

#============================================

def parse_frame_header(header: bytes) -> dict:
	"""
	Parse a 4-byte mpeg audio frame header.

	Args:
		header: Four bytes starting at a candidate frame sync.

	Returns:
		dict: sample_rate, channels and length in bytes, or None when the
		bytes are not a usable frame header.
	"""
	if len(header) < 4:
		return None
	if header[0] != 0xFF or (header[1] & 0xE0) != 0xE0:
		return None
	version_bits = (header[1] >> 3) & 0x03
	layer = 4 - ((header[1] >> 1) & 0x03)
	bitrate_index = header[2] >> 4
	rate_index = (header[2] >> 2) & 0x03
	padding = (header[2] >> 1) & 0x01
	channel_mode = header[3] >> 6
	if version_bits not in MPEG_VERSIONS or layer == 4:
		return None
	if bitrate_index in (0, 15) or rate_index == 3:
		return None
	(version, rates) = MPEG_VERSIONS[version_bits]
	sample_rate = rates[rate_index]
	table_version = '1' if version == '1' else '2'
	bitrate = BITRATES[(table_version, layer)][bitrate_index] * 1000
	if layer == 1:
		length = (12 * bitrate // sample_rate + padding) * 4
	elif layer == 3 and version != '1':
		length = 72 * bitrate // sample_rate + padding
	else:
		length = 144 * bitrate // sample_rate + padding
	channels = 1 if channel_mode == 3 else 2
	return {
		'sample_rate': sample_rate,
		'channels': channels,
		'length': length,
	}

#============================================

def _skip_id3v2(data: bytes) -> int:
	offset = 0
	while len(data) >= offset + 10 and data[offset:offset + 3] == b'ID3':
		flags = data[offset + 5]
		# syncsafe size, 7 bits per byte
		size = 0
		for value in data[offset + 6:offset + 10]:
			size = (size << 7) | (value & 0x7F)
		offset += 10 + size
		if flags & 0x10:
			offset += 10
	return offset

#============================================

def scan_mp3_frames(data: bytes) -> list:
	"""
	Locate every complete mpeg audio frame in an mp3 byte stream.

	Leading ID3v2 tags are skipped and bytes that do not start a frame are
	stepped over one at a time. A frame found after such a gap must be
	followed by another frame header. A truncated final frame ends the scan.

	Args:
		data: Raw mp3 file contents.

	Returns:
		list: Frame dicts with offset, length, sample_rate and channels.
	"""
	frames = []
	offset = _skip_id3v2(data)
	while offset + 4 <= len(data):
		frame = parse_frame_header(data[offset:offset + 4])
		if frame is None:
			offset += 1
			continue
		next_offset = offset + frame['length']
		if next_offset > len(data):
			break
		# after a resync, a frame only counts when another frame follows it
		in_sync = len(frames) > 0 and frames[-1]['offset'] + frames[-1]['length'] == offset
		if not in_sync and next_offset < len(data):
			if parse_frame_header(data[next_offset:next_offset + 4]) is None:
				offset += 1
				continue
		frame['offset'] = offset
		frames.append(frame)
		offset += frame['length']
	return frames

#============================================

def split_format_runs(frames: list) -> list:
	"""
	Group consecutive frames that share sample rate and channel count.

	Args:
		frames: Frame dicts from scan_mp3_frames().

	Returns:
		list: Run dicts with sample_rate, channels, start and end byte offsets.
	"""
	runs = []
	for frame in frames:
		end = frame['offset'] + frame['length']
		if len(runs) > 0:
			last = runs[-1]
			same_rate = last['sample_rate'] == frame['sample_rate']
			if same_rate and last['channels'] == frame['channels']:
				last['end'] = end
				continue
		runs.append({
			'sample_rate': frame['sample_rate'],
			'channels': frame['channels'],
			'start': frame['offset'],
			'end': end,
		})
	return runs

#============================================

def _decode_run(source: str, run: dict, payload: bytes = None) -> bytes:
	# pinned to the run's own format, so ffmpeg never resamples
	cmd = [
		"ffmpeg", "-hide_banner", "-loglevel", "error",
		"-f", "mp3",
		"-i", source,
		"-vn", "-sn",
		"-acodec", "pcm_s16le",
		"-ar", str(run['sample_rate']),
		"-ac", str(run['channels']),
		"-f", "s16le",
		"pipe:1",
	]
	proc = utils.run_process(cmd, text=False, input_data=payload)
	return proc.stdout

#============================================

def decode_mp3(input_file: str) -> pcm.PcmBuffer:
	"""
	Decode an mp3 file to 16-bit pcm.

	The rate and channel count of the first frame label the whole stream.
	When later frames declare a different format, each run of frames is
	decoded at its own format and its samples are appended unchanged.

	Args:
		input_file: Mp3 file path.

	Returns:
		pcm.PcmBuffer: Decoded int16 samples.
	"""
	utils.ensure_file_exists(input_file)
	utils.check_dependency("ffmpeg")
	try:
		with open(input_file, 'rb') as mp3_file:
			data = mp3_file.read()
	except OSError as exc:
		raise AudioIOError(f"cannot read {input_file}: {exc}") from exc
	runs = split_format_runs(scan_mp3_frames(data))
	if len(runs) == 0:
		raise DecodeError(f"no mp3 frames found in {input_file}")
	first = runs[0]
	if len(runs) == 1:
		pcm_data = _decode_run(input_file, first)
	else:
		print(f"Format changes {len(runs) - 1} times, "
			f"keeping {first['sample_rate']} Hz, {first['channels']} ch")
		chunks = []
		for run in runs:
			chunks.append(_decode_run("pipe:0", run, data[run['start']:run['end']]))
		pcm_data = b''.join(chunks)
	frame_bytes = 2 * first['channels']
	usable_bytes = len(pcm_data) - (len(pcm_data) % frame_bytes)
	if usable_bytes == 0:
		raise DecodeError(f"no audio frames decoded from {input_file}")
	samples = numpy.frombuffer(pcm_data[:usable_bytes], dtype='<i2').astype(numpy.int16)
	return pcm.PcmBuffer(samples, first['sample_rate'], first['channels'], 16)
