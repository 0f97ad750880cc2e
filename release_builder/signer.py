"""
codesign wrapper for release binaries.
"""
import subprocess
from pathlib import Path
from typing import Optional

from .errors import SigningFailure
from .keychain import SigningIdentity
from .logger import Logger


class SigningBackend:
    """Applies a signature to a single file."""

    def sign(self, path: Path, fingerprint: str, keychain: Optional[Path]) -> None:
        raise NotImplementedError


class CodesignBackend(SigningBackend):
    """Signs with hardened runtime and a secure timestamp."""

    def __init__(self, executable: str = "codesign"):
        self.executable = executable

    def sign(self, path: Path, fingerprint: str, keychain: Optional[Path]) -> None:
        cmd = [
            self.executable,
            "--force",
            "--options",
            "runtime",
            "--timestamp",
            "--sign",
            fingerprint,
        ]
        if keychain is not None and Path(keychain).is_file():
            cmd.extend(["--keychain", str(keychain)])
        cmd.append(str(path))

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise SigningFailure(f"could not run {self.executable}: {e}") from e
        if result.returncode != 0:
            raise SigningFailure(f"codesign exited {result.returncode}: {result.stderr.strip()}")


class BinarySigner:
    """Signs release binaries with the identity from the temporary keychain."""

    def __init__(self, backend: SigningBackend, logger: Logger):
        self.backend = backend
        self.logger = logger

    def sign(self, path: Path, identity: Optional[SigningIdentity]) -> None:
        if identity is None:
            raise SigningFailure(f"No signing identity available for {path}")

        self.logger.info(f"Signing {path}...")
        self.backend.sign(path, identity.fingerprint, identity.keychain)
        self.logger.success(f"Signed {path.name}")
