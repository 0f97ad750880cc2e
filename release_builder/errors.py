"""
Exceptions raised by the release build.

Per-target and per-artifact errors are caught by the orchestrator and
recorded; only SetupFailure stops the run.
"""
from typing import List, Optional


class ReleaseBuildError(Exception):
    """Base class for release build errors."""


class SetupFailure(ReleaseBuildError):
    """The fixed build environment could not be prepared."""


class ConfigMissing(ReleaseBuildError):
    """Optional feature inputs are absent or unreadable."""


class EnvironmentUnavailable(ReleaseBuildError):
    """A required external tool (e.g. Docker) is missing or not running."""


class ToolchainFailure(ReleaseBuildError):
    """The compiler exited non-zero."""

    def __init__(self, message: str, returncode: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class ArtifactMissing(ReleaseBuildError):
    """An expected binary was not produced by a successful build."""


class CredentialStoreError(ReleaseBuildError):
    """A credential-store (keychain) operation failed."""


class NoIdentity(ReleaseBuildError):
    """The isolated keychain holds no usable signing identity."""


class AmbiguousIdentity(ReleaseBuildError):
    """The isolated keychain holds more than one signing identity."""

    def __init__(self, candidates: List[str]):
        super().__init__(f"{len(candidates)} signing identities found: {', '.join(candidates)}")
        self.candidates = list(candidates)


class SigningFailure(ReleaseBuildError):
    """codesign could not sign an artifact."""


class NotarizationRejected(ReleaseBuildError):
    """The notarization service returned a non-Accepted verdict."""

    def __init__(self, submission_id: str, status: str, message: str = ""):
        super().__init__(message or f"submission {submission_id} finished with status {status}")
        self.submission_id = submission_id
        self.status = status
