import logging
import requests
from pathlib import Path
from urllib.parse import urlparse

from sppmon.config import effective_settings
from sppmon.errors import DeploymentError

log = logging.getLogger(__name__)


def is_url(location: str) -> bool:
    return urlparse(str(location)).scheme in ("http", "https")


def fetch_archive(location: str, dest_dir: Path) -> Path:
    """
    Makes a release archive available locally.

    Local paths are returned as they are; http(s) locations are streamed into
    `dest_dir` once so every target reads the same file.

    :param location: A filesystem path or an http(s) URL.
    :param dest_dir: Directory receiving downloaded archives.
    :return: The local path of the archive.
    """
    if not is_url(location):
        path = Path(location)
        if not path.is_file():
            raise DeploymentError("-", path.name, f"archive not found: {path}")
        return path

    name = Path(urlparse(location).path).name or "release.tar.gz"
    dest_path = Path(dest_dir) / name
    log.info(f"Downloading release archive from {location}...")
    try:
        headers = {"User-Agent": "sppmon/1.0"}
        with requests.get(location, stream=True, timeout=effective_settings.DOWNLOAD_TIMEOUT, headers=headers) as r:
            r.raise_for_status()
            total_size = int(r.headers.get("content-length", 0))
            downloaded = 0
            with open(dest_path, "wb") as f:
                for chunk in r.iter_content(chunk_size=8192):
                    f.write(chunk)
                    downloaded += len(chunk)
        log.info(f"Downloaded {downloaded / 1024 / 1024:.2f} MB to '{dest_path}'"
                 + (f" (expected {total_size / 1024 / 1024:.2f} MB)." if total_size and total_size != downloaded else "."))
        return dest_path
    except requests.RequestException as e:
        dest_path.unlink(missing_ok=True)
        raise DeploymentError("-", name, f"download from {location} failed: {e}") from e
