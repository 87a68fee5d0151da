"""
ECG Stream - streaming single-lead ECG feature extraction
"""

from ecgstream.config.constants import APP_VERSION as __version__

__all__ = ["__version__"]
