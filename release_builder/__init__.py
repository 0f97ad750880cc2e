"""
Codex Release Build System

A Python-based release pipeline that cross-compiles the Codex Rust
binaries, routes each target to a native or Docker build, and signs and
notarizes macOS binaries.
"""

from .config import BuildConfig, NotarizationCredentials, SigningCredentials, RUST_TARGETS, BINARIES, TARGET_NAMES
from .logger import Logger
from .tools import ToolInstaller
from .targets import BuildPlan, RoutingDecision, RoutingPolicy, Target, TargetManager, route
from .executor import BuildExecutor, BuildResult
from .keychain import SigningIdentity, SigningIdentityManager
from .notarize import NotarizationClient, NotarizationOutcome
from .orchestrator import ReleaseOrchestrator, ReleaseSummary, run_release

__all__ = [
    "BuildConfig",
    "SigningCredentials",
    "NotarizationCredentials",
    "RUST_TARGETS",
    "BINARIES",
    "TARGET_NAMES",
    "Logger",
    "ToolInstaller",
    "BuildPlan",
    "RoutingDecision",
    "RoutingPolicy",
    "Target",
    "TargetManager",
    "route",
    "BuildExecutor",
    "BuildResult",
    "SigningIdentity",
    "SigningIdentityManager",
    "NotarizationClient",
    "NotarizationOutcome",
    "ReleaseOrchestrator",
    "ReleaseSummary",
    "run_release",
]

__version__ = "1.0.0"
