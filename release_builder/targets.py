"""
Target resolution and build routing.

Each triple gets exactly one routing decision for the whole run: built on
the host, built in a Docker container, or skipped.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from .config import BuildConfig, RUST_TARGETS, TARGET_NAMES
from .logger import Logger


class RoutingDecision(Enum):
    NATIVE = "native"
    ISOLATED = "isolated"
    SKIPPED = "skipped"


class TargetFamily(Enum):
    APPLE = "apple"
    WINDOWS = "windows"
    LINUX_MUSL = "linux-musl"
    LINUX_GNU = "linux-gnu"
    UNKNOWN = "unknown"


def target_family(triple: str) -> TargetFamily:
    if "apple-darwin" in triple:
        return TargetFamily.APPLE
    if "pc-windows" in triple:
        return TargetFamily.WINDOWS
    if "unknown-linux-musl" in triple:
        return TargetFamily.LINUX_MUSL
    if "unknown-linux-gnu" in triple:
        return TargetFamily.LINUX_GNU
    return TargetFamily.UNKNOWN


@dataclass(frozen=True)
class Target:
    """A Rust target triple."""

    triple: str

    @property
    def family(self) -> TargetFamily:
        return target_family(self.triple)

    @property
    def friendly_name(self) -> str:
        return TARGET_NAMES.get(self.triple, self.triple)

    @property
    def arch(self) -> str:
        return self.triple.split("-", 1)[0]

    @property
    def is_windows(self) -> bool:
        return self.family is TargetFamily.WINDOWS

    @property
    def exe_suffix(self) -> str:
        return ".exe" if self.is_windows else ""

    def artifact_name(self, binary: str) -> str:
        """File name cargo gives *binary* for this target."""
        return f"{binary}{self.exe_suffix}"

    def dist_name(self, binary: str) -> str:
        """File name of *binary* in the distribution directory."""
        return f"{binary}-{self.triple}{self.exe_suffix}"


@dataclass(frozen=True)
class RoutingPolicy:
    skip_musl: bool = True
    skip_windows_cross: bool = False


def explain_route(
    triple: str, host_os: str, policy: RoutingPolicy
) -> Tuple[RoutingDecision, Optional[str]]:
    """Route *triple* and return a warning message alongside the decision, if any."""
    family = target_family(triple)

    if family is TargetFamily.APPLE:
        if host_os == "macos":
            return RoutingDecision.NATIVE, None
        return RoutingDecision.SKIPPED, "requires macOS host"

    if family is TargetFamily.WINDOWS:
        if host_os == "windows":
            return RoutingDecision.NATIVE, None
        if policy.skip_windows_cross:
            return RoutingDecision.SKIPPED, "Windows cross-compilation disabled"
        return (
            RoutingDecision.ISOLATED,
            "Windows cross-compilation from a non-Windows host is unreliable; attempting in Docker",
        )

    if family is TargetFamily.LINUX_MUSL:
        if policy.skip_musl:
            return (
                RoutingDecision.SKIPPED,
                "MUSL builds have ring crate compatibility issues; set SKIP_MUSL=false to attempt",
            )
        return RoutingDecision.ISOLATED, None

    if family is TargetFamily.LINUX_GNU:
        return RoutingDecision.ISOLATED, None

    return RoutingDecision.SKIPPED, "unrecognised target family"


def route(triple: str, host_os: str, policy: RoutingPolicy = RoutingPolicy()) -> RoutingDecision:
    return explain_route(triple, host_os, policy)[0]


@dataclass
class BuildPlan:
    """Targets grouped by routing decision, each in requested order."""

    native: List[Target] = field(default_factory=list)
    isolated: List[Target] = field(default_factory=list)
    skipped: List[Tuple[Target, str]] = field(default_factory=list)
    notes: List[Tuple[Target, str]] = field(default_factory=list)

    def decision_for(self, target: Target) -> RoutingDecision:
        if target in self.native:
            return RoutingDecision.NATIVE
        if target in self.isolated:
            return RoutingDecision.ISOLATED
        return RoutingDecision.SKIPPED

    @property
    def buildable(self) -> List[Target]:
        return self.native + self.isolated


class TargetManager:
    """Resolves requested targets and routes them for the current host."""

    def __init__(self, config: BuildConfig, logger: Logger):
        self.config = config
        self.logger = logger

    @property
    def policy(self) -> RoutingPolicy:
        return RoutingPolicy(
            skip_musl=self.config.skip_musl,
            skip_windows_cross=self.config.skip_windows_cross,
        )

    def resolve_targets(self, names: Iterable[str]) -> List[Target]:
        """Map triples or friendly names to Targets, dropping unknown names."""
        by_friendly = {friendly: triple for triple, friendly in TARGET_NAMES.items()}
        resolved: List[Target] = []

        for name in names:
            key = name.strip().lower()
            if key == "all":
                triples = list(RUST_TARGETS)
            elif key in RUST_TARGETS:
                triples = [key]
            elif key in by_friendly:
                triples = [by_friendly[key]]
            else:
                self.logger.warning(f"Unknown target: {name}")
                continue

            for triple in triples:
                target = Target(triple)
                if target not in resolved:
                    resolved.append(target)

        return resolved

    def plan(self, targets: Iterable[Target]) -> BuildPlan:
        plan = BuildPlan()
        for target in targets:
            decision, reason = explain_route(target.triple, self.config.host_os, self.policy)
            if decision is RoutingDecision.NATIVE:
                plan.native.append(target)
            elif decision is RoutingDecision.ISOLATED:
                plan.isolated.append(target)
            else:
                plan.skipped.append((target, reason or "skipped"))
                self.logger.warning(f"Skipping {target.triple} ({reason})")
                continue
            if reason:
                plan.notes.append((target, reason))
                self.logger.warning(f"{target.triple}: {reason}")
        return plan
