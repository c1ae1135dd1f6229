"""Capture sources that feed the decode pipeline."""
