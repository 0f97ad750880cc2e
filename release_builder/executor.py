"""
Build executor for native and Docker-isolated Rust builds.
"""
import shlex
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .config import BuildConfig
from .errors import ArtifactMissing, EnvironmentUnavailable, ReleaseBuildError, ToolchainFailure
from .logger import Logger
from .targets import RoutingDecision, Target, TargetFamily
from .tools import ToolInstaller

# Packages needed inside the build container
CONTAINER_PACKAGES = [
    "build-essential",
    "pkg-config",
    "musl-tools",
    "musl-dev",
    "gcc-aarch64-linux-gnu",
    "g++-aarch64-linux-gnu",
    "gcc-x86-64-linux-gnu",
    "g++-x86-64-linux-gnu",
    "clang",
    "llvm",
    "libssl-dev",
    "zlib1g-dev",
]

CONTAINER_WORKSPACE = "/workspace"


def isolated_env(target: Target) -> Dict[str, str]:
    """Compiler and library overrides for a container build of *target*."""
    if target.family is TargetFamily.LINUX_MUSL:
        return {
            "CC": "musl-gcc",
            "RUSTFLAGS": "-C target-feature=-crt-static",
            "RING_PREGENERATE_ASM": "1",
        }
    if target.family is TargetFamily.LINUX_GNU:
        return {
            "CC": f"{target.arch}-linux-gnu-gcc",
            "OPENSSL_DIR": "/usr",
            "OPENSSL_NO_PKG_CONFIG": "1",
            "PKG_CONFIG_ALLOW_CROSS": "1",
        }
    return {}


@dataclass
class BuildResult:
    """Result of a build operation."""

    target: Target
    decision: RoutingDecision
    success: bool
    outputs: Dict[str, Union[Path, ReleaseBuildError]] = field(default_factory=dict)
    error: Optional[ReleaseBuildError] = None

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error else None

    @property
    def artifacts(self) -> Dict[str, Path]:
        return {name: out for name, out in self.outputs.items() if isinstance(out, Path)}

    @property
    def missing(self) -> Dict[str, ReleaseBuildError]:
        return {name: out for name, out in self.outputs.items() if not isinstance(out, Path)}


class BuildExecutor:
    """Executes Rust release builds and collects binaries into dist."""

    def __init__(
        self,
        config: BuildConfig,
        project_root: Path,
        tool_installer: ToolInstaller,
        logger: Logger,
    ):
        self.config = config
        self.project_root = project_root
        self.tool_installer = tool_installer
        self.logger = logger

        self.cargo_dir = project_root / config.cargo_dir
        self.dist_dir = project_root / config.dist_dir
        self.target_dir = self.cargo_dir / "target"

    def clean(self) -> bool:
        """Remove the distribution directory."""
        if self.dist_dir.exists():
            try:
                shutil.rmtree(self.dist_dir)
            except OSError as e:
                self.logger.error(f"Clean failed: {e}")
                return False
            self.logger.info(f"Removed {self.dist_dir}")
        return True

    def cargo_args(self, target: Target, binaries: Sequence[str]) -> List[str]:
        cmd = ["cargo", "build", "--target", target.triple]
        if self.config.release:
            cmd.append("--release")
        for binary in binaries:
            cmd.extend(["--bin", binary])
        return cmd

    def docker_command(self, target: Target, binaries: Sequence[str]) -> List[str]:
        workdir = f"{CONTAINER_WORKSPACE}/{self.config.cargo_dir.as_posix()}"
        cmd = [
            "docker", "run", "--rm",
            "-v", f"{self.project_root}:{CONTAINER_WORKSPACE}",
            "-w", workdir,
            "-e", f"CARGO_HOME={CONTAINER_WORKSPACE}/.cargo",
        ]
        for key, value in isolated_env(target).items():
            cmd.extend(["-e", f"{key}={value}"])

        script = " && ".join([
            "apt-get update",
            "apt-get install -y " + " ".join(CONTAINER_PACKAGES),
            f"rustup target add {shlex.quote(target.triple)}",
            " ".join(shlex.quote(arg) for arg in self.cargo_args(target, binaries)),
        ])
        cmd.extend([self.config.docker_image, "bash", "-c", script])
        return cmd

    def _run(self, cmd: List[str], cwd: Path, target: Target) -> None:
        self.logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                env=self.tool_installer.get_env(),
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise ToolchainFailure(f"could not run {cmd[0]}: {e}") from e

        if result.returncode != 0:
            # Print the tail of stderr for debugging
            if result.stderr:
                for line in result.stderr.splitlines()[-20:]:
                    if line.strip():
                        self.logger.debug(f"  {line}")
            raise ToolchainFailure(
                f"{cmd[0]} exited with {result.returncode} for {target.triple}",
                returncode=result.returncode,
                output=result.stderr,
            )

    def build(
        self, target: Target, binaries: Sequence[str], decision: RoutingDecision
    ) -> BuildResult:
        """Build *binaries* for *target* and copy them into dist."""
        if decision is RoutingDecision.SKIPPED:
            return BuildResult(target=target, decision=decision, success=False)

        try:
            if decision is RoutingDecision.NATIVE:
                self.logger.info(f"Building for {target.triple}...")
                self._run(self.cargo_args(target, binaries), self.cargo_dir, target)
            else:
                self.logger.info(f"Building {target.triple} using Docker...")
                if not self.tool_installer.is_docker_available():
                    raise EnvironmentUnavailable(
                        "Docker is required for cross builds but not available"
                    )
                self._run(self.docker_command(target, binaries), self.project_root, target)
        except (EnvironmentUnavailable, ToolchainFailure) as e:
            self.logger.error(f"Failed to build {target.triple}: {e}")
            return BuildResult(target=target, decision=decision, success=False, error=e)

        self.logger.success(f"Built: {target.triple}")
        return BuildResult(
            target=target,
            decision=decision,
            success=True,
            outputs=self.collect(target, binaries),
        )

    def source_path(self, target: Target, binary: str) -> Path:
        return self.target_dir / target.triple / self.config.profile / target.artifact_name(binary)

    def dist_path(self, target: Target, binary: str) -> Path:
        return self.dist_dir / target.dist_name(binary)

    def collect(
        self, target: Target, binaries: Sequence[str]
    ) -> Dict[str, Union[Path, ReleaseBuildError]]:
        """Copy built binaries to the dist directory."""
        self.dist_dir.mkdir(parents=True, exist_ok=True)
        outputs: Dict[str, Union[Path, ReleaseBuildError]] = {}

        for binary in binaries:
            src = self.source_path(target, binary)
            dest = self.dist_path(target, binary)
            if not src.is_file():
                self.logger.warning(f"Binary {src} not found for {target.triple}")
                outputs[binary] = ArtifactMissing(str(src))
                continue
            try:
                shutil.copy2(src, dest)
                dest.chmod(0o755)
            except OSError as e:
                self.logger.error(f"Failed to copy {src}: {e}")
                outputs[binary] = ArtifactMissing(f"{src}: {e}")
                continue
            outputs[binary] = dest
            self.logger.success(f"Copied {binary} for {target.triple} to {dest}")

        return outputs


def format_size(size: float) -> str:
    """Format file size in human-readable format."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}TB"


def sized(paths: Sequence[Path]) -> List[Tuple[Path, str]]:
    return [(p, format_size(p.stat().st_size)) for p in paths if p.exists()]
