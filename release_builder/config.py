"""
Build configuration for Codex release builds.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional
import os
import platform
import tempfile


@dataclass
class BuildConfig:
    """Build configuration settings."""

    # Tool versions
    rust_version: str = "1.80"
    docker_image: str = "rust:1.80-slim"

    # Paths (relative to project root)
    cargo_dir: Path = field(default_factory=lambda: Path("codex-rs"))
    dist_dir: Path = field(default_factory=lambda: Path("dist/binaries"))
    temp_dir: Optional[Path] = None

    # Build settings
    release: bool = True
    clean: bool = False
    setup_toolchain: bool = True

    # Routing policy
    skip_musl: bool = True
    skip_windows_cross: bool = False

    # Signing
    sign: bool = True
    notarize: bool = True

    # Target platforms and binaries
    targets: List[str] = field(default_factory=list)
    binaries: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "BuildConfig":
        """Create a config from SKIP_MUSL / RUNNER_TEMP, letting explicit overrides win."""
        env = os.environ if environ is None else environ
        values = {
            "skip_musl": env.get("SKIP_MUSL", "true").strip().lower() != "false",
        }
        runner_temp = env.get("RUNNER_TEMP")
        if runner_temp:
            values["temp_dir"] = Path(runner_temp)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def profile(self) -> str:
        return "release" if self.release else "debug"

    @property
    def work_dir(self) -> Path:
        """Directory for transient secrets and archives."""
        return self.temp_dir or Path(tempfile.gettempdir())

    # Host detection
    @property
    def host_arch(self) -> str:
        machine = platform.machine().lower()
        if machine in ("x86_64", "amd64"):
            return "x86_64"
        elif machine in ("aarch64", "arm64"):
            return "aarch64"
        return machine

    @property
    def host_os(self) -> str:
        system = platform.system().lower()
        if system == "darwin":
            return "macos"
        return system

    @property
    def is_macos_host(self) -> bool:
        return self.host_os == "macos"

    def __post_init__(self):
        # Convert string paths to Path objects if needed
        if isinstance(self.cargo_dir, str):
            self.cargo_dir = Path(self.cargo_dir)
        if isinstance(self.dist_dir, str):
            self.dist_dir = Path(self.dist_dir)
        if isinstance(self.temp_dir, str):
            self.temp_dir = Path(self.temp_dir)
        if not self.targets:
            self.targets = list(RUST_TARGETS)
        if not self.binaries:
            self.binaries = list(BINARIES)


@dataclass
class SigningCredentials:
    """Code-signing certificate supplied through the environment."""

    certificate_p12: str = ""
    certificate_password: str = ""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SigningCredentials":
        env = os.environ if environ is None else environ
        return cls(
            certificate_p12=env.get("APPLE_CERTIFICATE_P12", ""),
            certificate_password=env.get("APPLE_CERTIFICATE_PASSWORD", ""),
        )

    @property
    def is_complete(self) -> bool:
        return bool(self.certificate_p12 and self.certificate_password)


@dataclass
class NotarizationCredentials:
    """App Store Connect API key used by notarytool."""

    key_p8: str = ""
    key_id: str = ""
    issuer_id: str = ""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "NotarizationCredentials":
        env = os.environ if environ is None else environ
        return cls(
            key_p8=env.get("APPLE_NOTARIZATION_KEY_P8", ""),
            key_id=env.get("APPLE_NOTARIZATION_KEY_ID", ""),
            issuer_id=env.get("APPLE_NOTARIZATION_ISSUER_ID", ""),
        )

    @property
    def is_complete(self) -> bool:
        return bool(self.key_p8 and self.key_id and self.issuer_id)


# Release targets, in build order
RUST_TARGETS = [
    "aarch64-apple-darwin",
    "x86_64-apple-darwin",
    "x86_64-unknown-linux-musl",
    "x86_64-unknown-linux-gnu",
    "aarch64-unknown-linux-musl",
    "aarch64-unknown-linux-gnu",
    "x86_64-pc-windows-msvc",
    "aarch64-pc-windows-msvc",
]

# Binaries produced for every target
BINARIES = [
    "codex",
    "codex-responses-api-proxy",
]

# Friendly names for targets
TARGET_NAMES = {
    "aarch64-apple-darwin": "macos-aarch64",
    "x86_64-apple-darwin": "macos-x86_64",
    "x86_64-unknown-linux-musl": "linux-musl-x86_64",
    "x86_64-unknown-linux-gnu": "linux-x86_64",
    "aarch64-unknown-linux-musl": "linux-musl-aarch64",
    "aarch64-unknown-linux-gnu": "linux-aarch64",
    "x86_64-pc-windows-msvc": "windows-x86_64",
    "aarch64-pc-windows-msvc": "windows-aarch64",
}

# Environment variables documented in the post-build help text
CREDENTIAL_ENV_VARS = {
    "APPLE_CERTIFICATE_P12": "base64-encoded-p12-certificate",
    "APPLE_CERTIFICATE_PASSWORD": "certificate-password",
    "APPLE_NOTARIZATION_KEY_P8": "base64-encoded-notarization-key",
    "APPLE_NOTARIZATION_KEY_ID": "notarization-key-id",
    "APPLE_NOTARIZATION_ISSUER_ID": "notarization-issuer-id",
}
