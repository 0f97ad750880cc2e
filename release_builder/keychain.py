"""
Temporary keychain management for macOS code signing.

A fresh keychain is created per invocation, added to the user's keychain
search list, and removed again at exit, leaving the search list exactly as
it was found.
"""
import re
import secrets
import subprocess
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .cleanup import ExitHooks
from .config import SigningCredentials
from .errors import (
    AmbiguousIdentity,
    ConfigMissing,
    CredentialStoreError,
    NoIdentity,
)
from .logger import Logger
from .secret_material import SecretFile

KEYCHAIN_LOCK_TIMEOUT = 21600
SIGNING_TOOLS = ("/usr/bin/codesign", "/usr/bin/security")

_FINGERPRINT_RE = re.compile(r"\b([0-9A-F]{40})\b")


@dataclass(frozen=True)
class SigningIdentity:
    """A codesigning identity inside a specific keychain."""

    fingerprint: str
    keychain: Path


class CredentialStore:
    """Operations on the OS credential store used during signing."""

    def list_keychains(self) -> List[str]:
        raise NotImplementedError

    def set_keychains(self, keychains: List[str]) -> None:
        raise NotImplementedError

    def default_keychain(self) -> Optional[str]:
        raise NotImplementedError

    def set_default_keychain(self, keychain: str) -> None:
        raise NotImplementedError

    def create_keychain(self, keychain: str, password: str) -> None:
        raise NotImplementedError

    def set_keychain_settings(self, keychain: str, lock_timeout: int) -> None:
        raise NotImplementedError

    def unlock_keychain(self, keychain: str, password: str) -> None:
        raise NotImplementedError

    def import_certificate(
        self, keychain: str, certificate: Path, password: str, tools: List[str]
    ) -> None:
        raise NotImplementedError

    def set_key_partition_list(self, keychain: str, password: str) -> None:
        raise NotImplementedError

    def find_identities(self, keychain: str) -> List[str]:
        raise NotImplementedError

    def delete_keychain(self, keychain: str) -> None:
        raise NotImplementedError

    def keychain_exists(self, keychain: str) -> bool:
        raise NotImplementedError


def _clean_keychain_line(line: str) -> str:
    return line.strip().strip('"').strip()


def parse_identity_hashes(output: str) -> List[str]:
    """Extract unique identity fingerprints from ``find-identity`` output."""
    return sorted({match.group(1) for match in _FINGERPRINT_RE.finditer(output)})


class SecurityCredentialStore(CredentialStore):
    """CredentialStore backed by the macOS ``security`` tool."""

    def __init__(self, executable: str = "security"):
        self.executable = executable

    def _run(self, *args: str, secret: bool = False) -> str:
        cmd = [self.executable, *args]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise CredentialStoreError(f"could not run {self.executable}: {e}") from e
        if result.returncode != 0:
            # Arguments can carry passwords
            shown = args[0] if secret else " ".join(args)
            raise CredentialStoreError(
                f"security {shown} failed ({result.returncode}): {result.stderr.strip()}"
            )
        return result.stdout

    def list_keychains(self) -> List[str]:
        output = self._run("list-keychains", "-d", "user")
        return [k for k in (_clean_keychain_line(line) for line in output.splitlines()) if k]

    def set_keychains(self, keychains: List[str]) -> None:
        self._run("list-keychains", "-d", "user", "-s", *keychains)

    def default_keychain(self) -> Optional[str]:
        # Exits non-zero when no default keychain is configured
        try:
            result = subprocess.run(
                [self.executable, "default-keychain", "-d", "user"],
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise CredentialStoreError(f"could not run {self.executable}: {e}") from e
        if result.returncode != 0:
            return None
        return _clean_keychain_line(result.stdout) or None

    def set_default_keychain(self, keychain: str) -> None:
        self._run("default-keychain", "-d", "user", "-s", keychain)

    def create_keychain(self, keychain: str, password: str) -> None:
        self._run("create-keychain", "-p", password, keychain, secret=True)

    def set_keychain_settings(self, keychain: str, lock_timeout: int) -> None:
        self._run("set-keychain-settings", "-lut", str(lock_timeout), keychain)

    def unlock_keychain(self, keychain: str, password: str) -> None:
        self._run("unlock-keychain", "-p", password, keychain, secret=True)

    def import_certificate(
        self, keychain: str, certificate: Path, password: str, tools: List[str]
    ) -> None:
        args = ["import", str(certificate), "-k", keychain, "-P", password]
        for tool in tools:
            args.extend(["-T", tool])
        self._run(*args, secret=True)

    def set_key_partition_list(self, keychain: str, password: str) -> None:
        self._run(
            "set-key-partition-list", "-S", "apple-tool:,apple:", "-s",
            "-k", password, keychain,
            secret=True,
        )

    def find_identities(self, keychain: str) -> List[str]:
        output = self._run("find-identity", "-v", "-p", "codesigning", keychain)
        return parse_identity_hashes(output)

    def delete_keychain(self, keychain: str) -> None:
        self._run("delete-keychain", keychain)

    def keychain_exists(self, keychain: str) -> bool:
        return Path(keychain).exists()


class SigningIdentityManager:
    """Creates the temporary signing keychain and tears it down again."""

    def __init__(
        self,
        credentials: SigningCredentials,
        store: CredentialStore,
        work_dir: Path,
        logger: Logger,
        exit_hooks: Optional[ExitHooks] = None,
    ):
        self.credentials = credentials
        self.store = store
        self.work_dir = Path(work_dir)
        self.logger = logger
        self.exit_hooks = exit_hooks

        self._keychain: Optional[str] = None
        self._saved_keychains: Optional[List[str]] = None
        self._saved_default: Optional[str] = None
        self._identity: Optional[SigningIdentity] = None

    @property
    def identity(self) -> Optional[SigningIdentity]:
        return self._identity

    @property
    def keychain(self) -> Optional[str]:
        return self._keychain

    def setup(self) -> Optional[SigningIdentity]:
        """Prepare a signing identity; returns None when signing is unavailable."""
        if not self.credentials.is_complete:
            self.logger.warning("Apple certificate credentials not provided. Skipping macOS signing.")
            self.logger.info(
                "To enable signing, set APPLE_CERTIFICATE_P12 and APPLE_CERTIFICATE_PASSWORD."
            )
            return None

        self.logger.info("Setting up macOS code signing...")
        if self.exit_hooks is not None:
            self.exit_hooks.register(self.teardown)

        suffix = uuid.uuid4().hex[:12]
        try:
            with SecretFile(
                self.credentials.certificate_p12,
                self.work_dir,
                f"apple_signing_certificate-{suffix}.p12",
            ) as cert_path:
                self._identity = self._create_identity(cert_path, suffix)
        except (ConfigMissing, CredentialStoreError, OSError) as e:
            self.logger.error(f"macOS signing setup failed: {e}")
            self.teardown()
            return None
        except NoIdentity:
            self.logger.error("No signing identities found")
            self.teardown()
            return None
        except AmbiguousIdentity as e:
            self.logger.error("Multiple signing identities found:")
            for candidate in e.candidates:
                self.logger.error(f"  {candidate}")
            self.teardown()
            return None

        self.logger.success("macOS signing setup complete")
        return self._identity

    def _create_identity(self, cert_path: Path, suffix: str) -> SigningIdentity:
        keychain = str(self.work_dir / f"codex-signing-{suffix}.keychain-db")
        password = secrets.token_urlsafe(24)

        # Snapshot the search list before it is touched
        self._saved_keychains = self.store.list_keychains()
        self._saved_default = self.store.default_keychain()

        # Tracked before creation so a half-created file is still removed
        self._keychain = keychain
        self.store.create_keychain(keychain, password)
        self.store.set_keychain_settings(keychain, KEYCHAIN_LOCK_TIMEOUT)
        self.store.unlock_keychain(keychain, password)

        existing = [k for k in self._saved_keychains if k != keychain]
        self.store.set_keychains([keychain] + existing)
        self.store.set_default_keychain(keychain)

        self.store.import_certificate(
            keychain, cert_path, self.credentials.certificate_password, list(SIGNING_TOOLS)
        )
        self.store.set_key_partition_list(keychain, password)

        hashes = self.store.find_identities(keychain)
        if not hashes:
            raise NoIdentity(f"no codesigning identity in {keychain}")
        if len(hashes) > 1:
            raise AmbiguousIdentity(hashes)

        self.logger.debug(f"Signing identity {hashes[0]} in {keychain}")
        return SigningIdentity(fingerprint=hashes[0], keychain=Path(keychain))

    def teardown(self) -> None:
        """
        Remove the temporary keychain and restore the search list. Idempotent.

        Each step is attempted even when an earlier one fails; failures are
        logged, never raised.
        """
        keychain = self._keychain
        self._identity = None
        if keychain is None:
            return

        self.logger.info("Cleaning up macOS signing keychain...")
        self._keychain = None
        remaining = self._restore_search_list(keychain)
        self._restore_default(keychain, remaining)

        try:
            if self.store.keychain_exists(keychain):
                self.store.delete_keychain(keychain)
        except CredentialStoreError as e:
            self.logger.error(f"Could not delete keychain {keychain}: {e}")

    def _restore_search_list(self, keychain: str) -> List[str]:
        try:
            current = self.store.list_keychains()
        except CredentialStoreError as e:
            self.logger.error(f"Could not read keychain search list: {e}")
            current = None

        if current is None:
            # Fall back to the list as it was before setup
            remaining = [k for k in self._saved_keychains or [] if k != keychain]
        else:
            remaining = [k for k in current if k != keychain]
            if remaining == current:
                return remaining

        try:
            self.store.set_keychains(remaining)
        except CredentialStoreError as e:
            self.logger.error(f"Could not restore keychain search list: {e}")
        return remaining

    def _restore_default(self, keychain: str, remaining: List[str]) -> None:
        default = self._saved_default
        if default not in remaining:
            default = remaining[0] if remaining else None
        if not default:
            return
        try:
            self.store.set_default_keychain(default)
        except CredentialStoreError as e:
            self.logger.error(f"Could not restore default keychain: {e}")
