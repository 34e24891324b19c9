"""encoded-mirror

Keeps an encoded copy of a music library in sync with the library itself,
running ffmpeg only for files that actually changed.
"""

__all__ = [
    "__version__",
]

# Keep in sync with pyproject.toml
__version__ = "0.1.0"
