"""
Asset storage for menu images.

Assets are addressed by the URL path stored on the record,
``/storage/<folder>/<filename>``. Removing an asset never blocks the record
change that made it obsolete: failures are logged and ignored.
"""
import logging
import mimetypes
from pathlib import Path
from typing import Optional, Protocol, Union

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "/storage/"


class AssetStore(Protocol):
    def read(self, key: str) -> bytes: ...
    def delete(self, key: str) -> None: ...


class LocalAssetStore:
    """Assets kept as files under a root directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def _resolve(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise ValueError(f"Asset key escapes the storage root: {key!r}")
        return path

    def read(self, key: str) -> bytes:
        return self._resolve(key).read_bytes()

    def delete(self, key: str) -> None:
        self._resolve(key).unlink()


def asset_key(url: Optional[str]) -> Optional[str]:
    """The store key behind a ``/storage/...`` URL, or None for anything else."""
    if not url or not url.startswith(STORAGE_PREFIX):
        return None
    return url[len(STORAGE_PREFIX):] or None


def media_type(key: str) -> str:
    guessed, _ = mimetypes.guess_type(key)
    return guessed or "application/octet-stream"


def discard_asset(store: AssetStore, url: Optional[str]) -> bool:
    key = asset_key(url)
    if key is None:
        return False
    try:
        store.delete(key)
    except (OSError, ValueError):
        logger.error(f"Error deleting asset {key}", exc_info=True)
        return False
    logger.info(f"Deleted asset {key}")
    return True
