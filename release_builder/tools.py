"""
Rust toolchain and Docker checks for the release build.
"""
import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, Iterable, Optional

from .config import BuildConfig
from .errors import SetupFailure
from .logger import Logger


class ToolInstaller:
    """Prepares rustup and checks for the container runtime."""

    def __init__(self, config: BuildConfig, project_root: Path, logger: Logger):
        self.config = config
        self.project_root = project_root
        self.logger = logger

    def get_env(self) -> Dict[str, str]:
        """Environment for cargo/rustup invocations."""
        env = os.environ.copy()
        cargo_bin = Path.home() / ".cargo" / "bin"
        if cargo_bin.is_dir() and str(cargo_bin) not in env.get("PATH", "").split(os.pathsep):
            env["PATH"] = os.pathsep.join([str(cargo_bin), env.get("PATH", "")])
        return env

    def _which(self, tool: str) -> Optional[str]:
        return shutil.which(tool, path=self.get_env().get("PATH"))

    def is_rust_installed(self) -> bool:
        return self._which("rustup") is not None and self._which("cargo") is not None

    def _rustup(self, *args: str) -> subprocess.CompletedProcess:
        cmd = ["rustup", *args]
        self.logger.debug(f"Running: {' '.join(cmd)}")
        return subprocess.run(cmd, env=self.get_env(), capture_output=True, text=True)

    def install_toolchain(self) -> None:
        """Install and select the pinned toolchain, raising SetupFailure on error."""
        if not self.is_rust_installed():
            raise SetupFailure("rustup/cargo not found; install Rust from https://rustup.rs")

        version = self.config.rust_version
        self.logger.info(f"Installing Rust {version} toolchain (matching CI)...")
        for args in (
            ("toolchain", "install", version, "--profile", "minimal"),
            ("default", version),
        ):
            result = self._rustup(*args)
            if result.returncode != 0:
                raise SetupFailure(
                    f"rustup {' '.join(args)} failed: {result.stderr.strip()}"
                )
        self.logger.success(f"Rust {version} ready")

    def add_targets(self, triples: Iterable[str]) -> bool:
        """Ensure rustup has the standard library for each triple."""
        ok = True
        for triple in triples:
            result = self._rustup("target", "add", triple)
            if result.returncode != 0:
                self.logger.warning(f"rustup target add {triple} failed: {result.stderr.strip()}")
                ok = False
        return ok

    def is_docker_available(self) -> bool:
        """Docker is on PATH and the daemon answers."""
        if self._which("docker") is None:
            return False
        result = subprocess.run(["docker", "info"], capture_output=True, text=True)
        return result.returncode == 0
