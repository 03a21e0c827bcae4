"""Version helpers.

Two identifiers are kept side by side:

- ``__version__``: Python package version (PEP 440), what pip sees.
- ``PIPELINE_VERSION``: user-facing decoder release tag (e.g. v1.4.0),
  recorded in ingestion reports.
"""

from __future__ import annotations

from dataclasses import dataclass
import platform
import sys


__version__ = "1.4.0"
PIPELINE_VERSION = "v1.4.0"


@dataclass(frozen=True)
class VersionInfo:
    package_version: str
    pipeline_version: str
    python: str
    platform: str
    numpy: str
    h5py: str
    pillow: str


def _dist_version(module_name: str) -> str:
    """Return ``module.__version__`` or ``"unknown"`` when the module is absent."""
    try:
        mod = __import__(module_name)
    except ImportError:
        return "unknown"
    return str(getattr(mod, "__version__", "unknown"))


def get_version_info() -> VersionInfo:
    return VersionInfo(
        package_version=__version__,
        pipeline_version=PIPELINE_VERSION,
        python=sys.version.split()[0],
        platform=f"{platform.system()} {platform.release()} ({platform.machine()})",
        numpy=_dist_version("numpy"),
        h5py=_dist_version("h5py"),
        pillow=_dist_version("PIL"),
    )


def as_report_fields(prefix: str = "asi") -> dict[str, str]:
    """Key-value pairs describing the decoder build, for ingestion reports."""
    v = get_version_info()
    return {
        f"{prefix}_version": v.pipeline_version,
        f"{prefix}_package": v.package_version,
        f"{prefix}_python": v.python,
        f"{prefix}_platform": v.platform,
        f"{prefix}_numpy": v.numpy,
        f"{prefix}_h5py": v.h5py,
        f"{prefix}_pillow": v.pillow,
    }
