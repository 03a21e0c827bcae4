"""Decode options and runtime capabilities.

:class:`DecodeOptions` is what a caller asks for; :class:`DecoderCapabilities`
is what the host can do. Capabilities are decided once (at startup or from
configuration) and handed to the decoders, never probed ad hoc mid-decode.
"""

from __future__ import annotations

from dataclasses import dataclass
import tarfile


@dataclass(frozen=True)
class DecodeOptions:
    """Per-call decoding switches.

    first_frame_only:
        decode only the first frame of each file.
    no_metadata:
        skip metadata extraction (records carry only ``source_path``).
    minimal_metadata:
        populate only the timing fields.
    assume_files_exist:
        skip the existence/readability pre-check.
    """

    first_frame_only: bool = False
    no_metadata: bool = False
    minimal_metadata: bool = False
    assume_files_exist: bool = False


@dataclass(frozen=True)
class DecoderCapabilities:
    """What the runtime offers the archive extractor.

    partial_tar_extraction:
        the extractor may pull a single member out of a tar archive. This
        relies on tarfile extraction filters (``tarfile.data_filter``); when
        they are missing, archives are extracted whole after path validation.
    """

    partial_tar_extraction: bool = True

    @classmethod
    def detect(cls) -> DecoderCapabilities:
        return cls(partial_tar_extraction=hasattr(tarfile, "data_filter"))
