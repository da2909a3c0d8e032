#!/usr/bin/env python3

#============================================

class CutblancError(RuntimeError):
	"""Base error for cutblanc operations."""

#============================================

class AudioIOError(CutblancError):
	"""Raised when an audio file cannot be opened, created, or written."""

#============================================

class DecodeError(CutblancError):
	"""Raised when input audio is malformed or in an unsupported format."""

#============================================

class FormatMismatchError(CutblancError):
	"""Raised when an append target has a different wav format."""

#============================================

class WriteError(CutblancError):
	"""Raised when sample values cannot be encoded at the target bit depth."""
