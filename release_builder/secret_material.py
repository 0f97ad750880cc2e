"""
Transient handling of base64 secrets (certificates, API keys).
"""
import base64
import binascii
import os
from pathlib import Path
from typing import Optional, Union

from .errors import ConfigMissing


def decode_secret(blob: str) -> bytes:
    """Decode a base64 blob, tolerating embedded whitespace."""
    compact = "".join(blob.split())
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigMissing(f"secret is not valid base64: {e}") from e


def remove_quietly(*paths: Optional[Union[str, Path]]) -> None:
    """Remove files that may or may not exist."""
    for path in paths:
        if path is None:
            continue
        try:
            Path(path).unlink()
        except FileNotFoundError:
            pass


class SecretFile:
    """Write a decoded secret to disk for the duration of a ``with`` block.

    The file is created with owner-only permissions and removed on exit,
    whether or not the block raised.
    """

    def __init__(self, blob: str, directory: Path, filename: str):
        self.blob = blob
        self.path = Path(directory) / filename

    def __enter__(self) -> Path:
        data = decode_secret(self.blob)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        remove_quietly(self.path)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        try:
            os.write(fd, data)
        finally:
            os.close(fd)
        return self.path

    def __exit__(self, exc_type, exc, tb) -> None:
        remove_quietly(self.path)
