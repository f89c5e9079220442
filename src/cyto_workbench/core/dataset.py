"""
Loaded dataset: metadata, preview sample and the raw file contents.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from cyto_workbench.fcs.metadata import DatasetMeta, decode_metadata
from cyto_workbench.fcs.reader import DEFAULT_PREVIEW_CAP, PreviewData, read_preview

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Dataset:
    """
    One open FCS file.

    Attributes:
        name: Display name (file name, or "<memory>")
        meta: Resolved metadata
        preview: Evenly spaced raw sample decoded at load time
        source: Complete file contents, handed to background jobs
        path: File the contents came from, if any
    """
    name: str
    meta: DatasetMeta
    preview: PreviewData
    source: bytes
    path: Optional[Path] = None

    @property
    def n_events(self) -> int:
        return self.meta.n_events

    @property
    def n_params(self) -> int:
        return self.meta.n_params


def load_dataset(source: Union[str, Path, bytes],
                 preview_cap: int = DEFAULT_PREVIEW_CAP) -> Dataset:
    """
    Decode metadata and the preview sample of an FCS file.

    Args:
        source: File path, or the file contents
        preview_cap: Maximum number of preview events

    Returns:
        Dataset ready for compensation and plotting

    Raises:
        FCSError: If the file is malformed
        OSError: If the file cannot be read
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        buf = bytes(source)
        path = None
        name = "<memory>"
    else:
        path = Path(source)
        buf = path.read_bytes()
        name = path.name

    meta = decode_metadata(buf)
    preview = read_preview(buf, meta, preview_cap)
    logger.info("Loaded %s: %d events, %d params, preview %d",
                name, meta.n_events, meta.n_params, preview.n)
    return Dataset(name=name, meta=meta, preview=preview, source=buf, path=path)


__all__ = ['Dataset', 'load_dataset']
