#!/usr/bin/env python3

from cutblanclib.core.errors import CutblancError

#============================================

SILENCE_THRESHOLD = 100
MIN_SILENCE_RUN = 1000
FADE_DURATION = 1.0
LOOP_DURATION = 10.0
OUTPUT_BITS_PER_SAMPLE = 16

#============================================

def default_settings() -> dict:
	"""
	Build the default settings dictionary.

	Returns:
		dict: Default processing settings.
	"""
	return {
		'threshold': SILENCE_THRESHOLD,
		'min_silence_run': MIN_SILENCE_RUN,
		'fade_duration': FADE_DURATION,
		'loop_duration': LOOP_DURATION,
		'output_bits_per_sample': OUTPUT_BITS_PER_SAMPLE,
		'flush_trailing_silence': False,
	}

#============================================

def coerce_bool(value, key: str) -> bool:
	if isinstance(value, bool):
		return value
	if isinstance(value, int):
		return bool(value)
	if isinstance(value, str):
		normalized = value.strip().lower()
		if normalized in ("true", "yes", "1", "on"):
			return True
		if normalized in ("false", "no", "0", "off"):
			return False
	raise CutblancError(f"setting {key} must be a boolean")

#============================================

def coerce_float(value, key: str) -> float:
	if isinstance(value, bool):
		raise CutblancError(f"setting {key} must be a number")
	if isinstance(value, (int, float)):
		return float(value)
	if isinstance(value, str):
		try:
			return float(value)
		except ValueError as exc:
			raise CutblancError(f"setting {key} must be a number") from exc
	raise CutblancError(f"setting {key} must be a number")

#============================================

def coerce_int(value, key: str) -> int:
	if isinstance(value, bool):
		raise CutblancError(f"setting {key} must be an integer")
	if isinstance(value, int):
		return value
	if isinstance(value, float):
		return int(value)
	if isinstance(value, str):
		try:
			return int(float(value))
		except ValueError as exc:
			raise CutblancError(f"setting {key} must be an integer") from exc
	raise CutblancError(f"setting {key} must be an integer")

#============================================

def build_settings(overrides: dict = None) -> dict:
	"""
	Merge overrides onto the default settings.

	Args:
		overrides: Partial settings mapping, or None for the defaults.

	Returns:
		dict: Normalized settings.
	"""
	settings = default_settings()
	if overrides is None:
		return settings
	if not isinstance(overrides, dict):
		raise CutblancError("settings overrides must be a mapping")
	for key in overrides:
		if key not in settings:
			raise CutblancError(f"unknown setting: {key}")
	threshold = coerce_int(overrides.get('threshold',
		settings['threshold']), "threshold")
	min_silence_run = coerce_int(overrides.get('min_silence_run',
		settings['min_silence_run']), "min_silence_run")
	fade_duration = coerce_float(overrides.get('fade_duration',
		settings['fade_duration']), "fade_duration")
	loop_duration = coerce_float(overrides.get('loop_duration',
		settings['loop_duration']), "loop_duration")
	output_bits = coerce_int(overrides.get('output_bits_per_sample',
		settings['output_bits_per_sample']), "output_bits_per_sample")
	flush_trailing = coerce_bool(overrides.get('flush_trailing_silence',
		settings['flush_trailing_silence']), "flush_trailing_silence")
	if threshold < 0:
		raise CutblancError("threshold must be 0 or positive")
	if min_silence_run <= 0:
		raise CutblancError("min_silence_run must be positive")
	if fade_duration < 0:
		raise CutblancError("fade_duration must be 0 or positive")
	if loop_duration <= 0:
		raise CutblancError("loop_duration must be positive")
	# decoded mp3 samples are 16-bit, so narrower output would clip
	if output_bits not in (16, 32):
		raise CutblancError("output_bits_per_sample must be 16 or 32")
	return {
		'threshold': threshold,
		'min_silence_run': min_silence_run,
		'fade_duration': fade_duration,
		'loop_duration': loop_duration,
		'output_bits_per_sample': output_bits,
		'flush_trailing_silence': flush_trailing,
	}
