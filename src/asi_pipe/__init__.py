"""asi-pipe package.

Entry point for callers: :func:`asi_pipe.ingest.decode`.
"""

from .version import __version__, PIPELINE_VERSION

__all__ = ["__version__", "PIPELINE_VERSION"]
