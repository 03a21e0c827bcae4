"""Dataset helpers.

* file-format classification by suffix (:func:`classify_path`),
* the registry of canonical dataset names (:func:`get_dataset`).
"""

from __future__ import annotations

from .classify import FileFormat, classify_path, is_gzipped, is_tar_archive, strip_known_suffix
from .registry import DatasetDescriptor, get_dataset, load_dataset_registry

__all__ = [
    "FileFormat",
    "classify_path",
    "is_gzipped",
    "is_tar_archive",
    "strip_known_suffix",
    "DatasetDescriptor",
    "get_dataset",
    "load_dataset_registry",
]
