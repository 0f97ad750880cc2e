"""
Apple notarization of signed binaries.

Single-file submissions are zipped with their parent directory kept so the
notary service can identify the Mach-O inside. The ticket is stapled to the
original file, not the archive.
"""
import json
import subprocess
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import NotarizationCredentials
from .errors import ConfigMissing, NotarizationRejected, ReleaseBuildError
from .logger import Logger
from .secret_material import SecretFile, remove_quietly


class NotarizationOutcome(Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    SKIPPED = "skipped"


@dataclass
class NotarizationResult:
    outcome: NotarizationOutcome
    submission_id: str = ""
    status: str = ""
    message: str = ""

    @property
    def accepted(self) -> bool:
        return self.outcome is NotarizationOutcome.ACCEPTED


class NotarizationBackend:
    """Archive, submit and staple operations of the notary service."""

    def archive(self, source: Path, destination: Path) -> None:
        raise NotImplementedError

    def submit(self, archive: Path, key_path: Path, key_id: str, issuer_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    def staple(self, path: Path) -> None:
        raise NotImplementedError


class NotarytoolBackend(NotarizationBackend):
    """Uses ditto, ``xcrun notarytool`` and ``xcrun stapler``."""

    def __init__(self, timeout: Optional[str] = None):
        # notarytool duration string, e.g. "30m"; None waits indefinitely
        self.timeout = timeout

    def _run(self, cmd: List[str], status: str) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise NotarizationRejected("", status, f"could not run {cmd[0]}: {e}") from e

    def archive(self, source: Path, destination: Path) -> None:
        result = self._run(
            ["ditto", "-c", "-k", "--keepParent", str(source), str(destination)],
            "ArchiveFailed",
        )
        if result.returncode != 0:
            raise NotarizationRejected("", "ArchiveFailed", f"ditto failed: {result.stderr.strip()}")

    def submit(self, archive: Path, key_path: Path, key_id: str, issuer_id: str) -> Dict[str, Any]:
        cmd = [
            "xcrun", "notarytool", "submit", str(archive),
            "--key", str(key_path),
            "--key-id", key_id,
            "--issuer", issuer_id,
            "--output-format", "json",
            "--wait",
        ]
        if self.timeout:
            cmd.extend(["--timeout", self.timeout])

        result = self._run(cmd, "SubmitFailed")
        try:
            response = json.loads(result.stdout or "{}")
        except json.JSONDecodeError:
            response = {}
        if result.returncode != 0 and not response:
            raise NotarizationRejected(
                "", "SubmitFailed", f"notarytool exited {result.returncode}: {result.stderr.strip()}"
            )
        return response if isinstance(response, dict) else {}

    def staple(self, path: Path) -> None:
        result = self._run(["xcrun", "stapler", "staple", str(path)], "StapleFailed")
        if result.returncode != 0:
            raise NotarizationRejected("", "StapleFailed", f"stapler failed: {result.stderr.strip()}")


class NotarizationClient:
    def __init__(
        self,
        credentials: NotarizationCredentials,
        backend: NotarizationBackend,
        work_dir: Path,
        logger: Logger,
    ):
        self.credentials = credentials
        self.backend = backend
        self.work_dir = Path(work_dir)
        self.logger = logger

    def notarize(self, path: Path, display_name: str) -> NotarizationResult:
        """Submit *path*, wait for the verdict and staple on acceptance."""
        if not self.credentials.is_complete:
            self.logger.warning(
                f"Apple notarization credentials not provided. Skipping notarization for {display_name}."
            )
            return NotarizationResult(NotarizationOutcome.SKIPPED)

        self.logger.info(f"Notarizing {display_name}...")
        archive_path = self.work_dir / f"{display_name}.zip"
        key_name = f"notarytool-{uuid.uuid4().hex[:12]}.key.p8"
        try:
            with SecretFile(self.credentials.key_p8, self.work_dir, key_name) as key_path:
                remove_quietly(archive_path)
                self.backend.archive(path, archive_path)
                response = self.backend.submit(
                    archive_path, key_path, self.credentials.key_id, self.credentials.issuer_id
                )
                submission_id = str(response.get("id") or "")
                status = str(response.get("status") or "Unknown")
                self.logger.info(
                    f"Notarization submission {submission_id} completed with status {status}"
                )

                if status != "Accepted":
                    raise NotarizationRejected(submission_id, status)

                self.logger.info(f"Stapling notarization ticket to {path}...")
                try:
                    self.backend.staple(path)
                except NotarizationRejected as e:
                    raise NotarizationRejected(submission_id, status, str(e)) from e
        except NotarizationRejected as e:
            self.logger.error(
                f"Notarization failed for {display_name} "
                f"(submission {e.submission_id or 'n/a'}, status {e.status}): {e}"
            )
            return NotarizationResult(
                NotarizationOutcome.REJECTED, e.submission_id, e.status, str(e)
            )
        except ConfigMissing as e:
            self.logger.error(f"Notarization key for {display_name} is unusable: {e}")
            return NotarizationResult(NotarizationOutcome.REJECTED, message=str(e))
        except (ReleaseBuildError, OSError) as e:
            self.logger.error(f"Notarization failed for {display_name}: {e}")
            return NotarizationResult(NotarizationOutcome.REJECTED, message=str(e))
        finally:
            remove_quietly(archive_path)

        self.logger.success(f"Notarized and stapled {display_name}")
        return NotarizationResult(NotarizationOutcome.ACCEPTED, submission_id, status)
