"""Read-through JPEG cache served over HTTP."""

__version__ = '1.1.0'
