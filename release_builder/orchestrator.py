"""
Release orchestration: toolchain, signing setup, routing, builds, summary.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .cleanup import ExitHooks
from .config import BuildConfig, NotarizationCredentials, SigningCredentials
from .errors import ReleaseBuildError, SetupFailure
from .executor import BuildExecutor, BuildResult, sized
from .keychain import CredentialStore, SecurityCredentialStore, SigningIdentityManager
from .logger import Logger
from .notarize import (
    NotarizationBackend,
    NotarizationClient,
    NotarizationOutcome,
    NotarytoolBackend,
)
from .signer import BinarySigner, CodesignBackend, SigningBackend
from .targets import BuildPlan, Target, TargetFamily, TargetManager
from .tools import ToolInstaller


@dataclass
class ArtifactRecord:
    """A binary placed in dist and what happened to it afterwards."""

    binary: str
    triple: str
    path: Path
    signed: Optional[bool] = None
    notarization: Optional[NotarizationOutcome] = None

    @property
    def status(self) -> str:
        if self.signed is None:
            return "unsigned"
        if not self.signed:
            return "signing failed"
        if self.notarization is None:
            return "signed"
        return f"signed, notarization {self.notarization.value}"


@dataclass
class ReleaseSummary:
    dist_dir: Path
    built: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: Dict[str, str] = field(default_factory=dict)
    artifacts: List[ArtifactRecord] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed) or any(
            r.signed is False or r.notarization is NotarizationOutcome.REJECTED
            for r in self.artifacts
        )


class ReleaseOrchestrator:
    """Runs the full (target x binary) release matrix once."""

    def __init__(
        self,
        config: BuildConfig,
        project_root: Path,
        logger: Logger,
        signing_credentials: Optional[SigningCredentials] = None,
        notarization_credentials: Optional[NotarizationCredentials] = None,
        credential_store: Optional[CredentialStore] = None,
        signing_backend: Optional[SigningBackend] = None,
        notarization_backend: Optional[NotarizationBackend] = None,
        tool_installer: Optional[ToolInstaller] = None,
        exit_hooks: Optional[ExitHooks] = None,
    ):
        self.config = config
        self.project_root = project_root
        self.logger = logger
        self.exit_hooks = exit_hooks or ExitHooks(logger)

        self.tool_installer = tool_installer or ToolInstaller(config, project_root, logger)
        self.target_manager = TargetManager(config, logger)
        self.executor = BuildExecutor(config, project_root, self.tool_installer, logger)

        work_dir = config.work_dir
        self.identity_manager = SigningIdentityManager(
            signing_credentials or SigningCredentials.from_env(),
            credential_store or SecurityCredentialStore(),
            work_dir,
            logger,
            self.exit_hooks,
        )
        self.signer = BinarySigner(signing_backend or CodesignBackend(), logger)
        self.notarizer = NotarizationClient(
            notarization_credentials or NotarizationCredentials.from_env(),
            notarization_backend or NotarytoolBackend(),
            work_dir,
            logger,
        )

    def prepare(self) -> List[Target]:
        """Resolve targets and ready the toolchain. Raises SetupFailure."""
        targets = self.target_manager.resolve_targets(self.config.targets)
        if not targets:
            raise SetupFailure("No valid targets specified")
        if not self.config.binaries:
            raise SetupFailure("No binaries specified")

        if self.config.setup_toolchain:
            self.tool_installer.install_toolchain()
            self.logger.info("Ensuring all rustup targets are installed...")
            if not self.tool_installer.add_targets(t.triple for t in targets):
                self.logger.warning("Some targets could not be installed")

        if self.config.clean:
            self.executor.clean()
        self.executor.dist_dir.mkdir(parents=True, exist_ok=True)
        return targets

    def setup_signing(self) -> None:
        if not self.config.is_macos_host or not self.config.sign:
            return
        self.logger.info("Detected macOS - will attempt notarization if credentials are provided")
        if self.identity_manager.credentials.is_complete:
            self.exit_hooks.install()
        self.identity_manager.setup()

    def run(self) -> ReleaseSummary:
        targets = self.prepare()
        summary = ReleaseSummary(dist_dir=self.executor.dist_dir)

        try:
            self.setup_signing()
            plan = self.target_manager.plan(targets)
            self.logger.plan(plan)
            for target, reason in plan.skipped:
                summary.skipped[target.triple] = reason

            self._run_builds(plan, summary)
        finally:
            self.identity_manager.teardown()
            self.exit_hooks.uninstall()

        self.logger.results(sized([r.path for r in summary.artifacts]))
        self.logger.summary(summary)
        return summary

    def _run_builds(self, plan: BuildPlan, summary: ReleaseSummary) -> None:
        total = len(plan.buildable)
        binaries = self.config.binaries

        if plan.native:
            self.logger.header(f"Building native targets: {' '.join(t.triple for t in plan.native)}")
        for i, target in enumerate(plan.native, 1):
            self.logger.step(i, total, f"Building {target.friendly_name}")
            result = self.executor.build(target, binaries, plan.decision_for(target))
            self._record(result, summary, release_apple=target.family is TargetFamily.APPLE)

        if plan.isolated:
            self.logger.header(
                f"Building cross-compilation targets: {' '.join(t.triple for t in plan.isolated)}"
            )
        offset = len(plan.native)
        for i, target in enumerate(plan.isolated, offset + 1):
            self.logger.step(i, total, f"Building {target.friendly_name}")
            result = self.executor.build(target, binaries, plan.decision_for(target))
            self._record(result, summary, release_apple=False)

    def _record(self, result: BuildResult, summary: ReleaseSummary, release_apple: bool) -> None:
        triple = result.target.triple
        if not result.success:
            summary.failed[triple] = result.error_message or "build failed"
            return
        summary.built.append(triple)

        for binary, path in result.artifacts.items():
            record = ArtifactRecord(binary=binary, triple=triple, path=path)
            summary.artifacts.append(record)
            if release_apple and self.identity_manager.identity is not None:
                self._sign_and_notarize(record, result.target)

    def _sign_and_notarize(self, record: ArtifactRecord, target: Target) -> None:
        try:
            self.signer.sign(record.path, self.identity_manager.identity)
        except ReleaseBuildError as e:
            self.logger.error(f"Signing failed for {record.path.name}: {e}")
            record.signed = False
            return
        record.signed = True

        if not self.config.notarize:
            return
        try:
            result = self.notarizer.notarize(record.path, target.dist_name(record.binary))
        except ReleaseBuildError as e:
            self.logger.error(f"Notarization failed for {record.path.name}: {e}")
            record.notarization = NotarizationOutcome.REJECTED
            return
        record.notarization = result.outcome


def run_release(
    config: BuildConfig,
    project_root: Path,
    logger: Logger,
    **collaborators,
) -> ReleaseSummary:
    """
    Main entry point for running a release build.

    Args:
        config: Build configuration
        project_root: Repository root containing the cargo workspace
        logger: Logger instance
        **collaborators: Optional overrides passed to ReleaseOrchestrator

    Returns:
        Summary of built, skipped and failed targets

    Raises:
        SetupFailure: if the toolchain or target list cannot be prepared
    """
    orchestrator = ReleaseOrchestrator(config, project_root, logger, **collaborators)
    return orchestrator.run()
