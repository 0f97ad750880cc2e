"""
Command-line interface for the Codex release build.
"""
import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from .config import BINARIES, CREDENTIAL_ENV_VARS, RUST_TARGETS, TARGET_NAMES, BuildConfig
from .errors import SetupFailure
from .logger import Logger
from .orchestrator import run_release


def print_banner():
    """Print the build script banner."""
    print()
    print("=" * 50)
    print("  Codex Release Build")
    print("  Cross-Compilation, Signing & Notarization")
    print("=" * 50)
    print()


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        description="Build Codex release binaries for all platforms",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                              Build every target the host can handle
  %(prog)s --target macos-aarch64       Build one target (triple or friendly name)
  %(prog)s --bin codex                  Build only the codex binary
  %(prog)s --no-skip-musl               Attempt MUSL builds in Docker
  %(prog)s --list-targets               Show targets and how they would be routed

Environment:
  APPLE_CERTIFICATE_P12 / APPLE_CERTIFICATE_PASSWORD      enable macOS signing
  APPLE_NOTARIZATION_KEY_P8 / _KEY_ID / _ISSUER_ID        enable notarization
  SKIP_MUSL=false                                         same as --no-skip-musl
""",
    )

    selection = parser.add_argument_group("Target Selection")
    selection.add_argument(
        "--target",
        "-t",
        dest="targets",
        action="append",
        metavar="TARGET",
        help="Target triple or friendly name to build (repeatable, default: all)",
    )
    selection.add_argument(
        "--bin",
        "-b",
        dest="binaries",
        action="append",
        metavar="BIN",
        help=f"Binary to build (repeatable, default: {', '.join(BINARIES)})",
    )
    selection.add_argument(
        "--list-targets",
        action="store_true",
        help="List known targets and their routing on this host, then exit",
    )

    routing = parser.add_argument_group("Routing")
    routing.add_argument(
        "--skip-musl",
        dest="skip_musl",
        action="store_true",
        default=None,
        help="Skip MUSL targets (default, or SKIP_MUSL=true)",
    )
    routing.add_argument(
        "--no-skip-musl",
        dest="skip_musl",
        action="store_false",
        help="Attempt MUSL targets in Docker",
    )
    routing.add_argument(
        "--skip-windows-cross",
        action="store_true",
        help="Skip Windows targets instead of attempting them in Docker",
    )

    build = parser.add_argument_group("Build Mode")
    build.add_argument(
        "--debug",
        action="store_true",
        help="Build in debug mode instead of release",
    )
    build.add_argument(
        "--clean",
        action="store_true",
        help="Remove the dist directory before building",
    )
    build.add_argument(
        "--dist-dir",
        type=Path,
        help="Distribution directory, relative to the project root (default: dist/binaries)",
    )
    build.add_argument(
        "--project-root",
        type=Path,
        help="Repository root containing codex-rs (default: directory of build.py, or the current directory)",
    )
    build.add_argument(
        "--skip-toolchain-setup",
        action="store_true",
        help="Do not run rustup toolchain/target installation",
    )

    signing = parser.add_argument_group("Signing")
    signing.add_argument(
        "--no-sign",
        action="store_true",
        help="Disable macOS signing and notarization",
    )
    signing.add_argument(
        "--no-notarize",
        action="store_true",
        help="Sign but do not notarize macOS binaries",
    )

    other = parser.add_argument_group("Other Options")
    other.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )
    other.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )

    return parser


def build_config(args: argparse.Namespace) -> BuildConfig:
    return BuildConfig.from_env(
        release=not args.debug,
        clean=args.clean,
        setup_toolchain=not args.skip_toolchain_setup,
        skip_musl=args.skip_musl,
        skip_windows_cross=args.skip_windows_cross,
        sign=not args.no_sign,
        notarize=not args.no_notarize,
        targets=args.targets,
        binaries=args.binaries,
        dist_dir=args.dist_dir,
    )


def list_targets(config: BuildConfig) -> None:
    from .targets import RoutingPolicy, explain_route

    policy = RoutingPolicy(config.skip_musl, config.skip_windows_cross)
    for triple in RUST_TARGETS:
        decision, reason = explain_route(triple, config.host_os, policy)
        line = f"  {TARGET_NAMES[triple]:<20} {triple:<28} {decision.value}"
        print(f"{line}  ({reason})" if reason else line)


def print_credentials_help():
    print("To set up macOS signing and notarization for future builds, set these environment variables:")
    for name, placeholder in CREDENTIAL_ENV_VARS.items():
        print(f"  export {name}='{placeholder}'")
    print()
    print("These credentials can be obtained from your Apple Developer account.")


def main(argv: Optional[List[str]] = None, default_root: Optional[Path] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    print_banner()

    logger = Logger(
        use_color=not args.no_color,
        verbose=args.verbose,
    )

    project_root = (args.project_root or default_root or Path(os.getcwd())).resolve()
    config = build_config(args)

    logger.info(f"Host: {config.host_os}-{config.host_arch}")
    logger.info(f"Project: {project_root}")
    logger.info(f"Building in {project_root / config.cargo_dir}")
    logger.newline()

    if args.list_targets:
        list_targets(config)
        return 0

    try:
        summary = run_release(config, project_root, logger)
    except SetupFailure as e:
        logger.error(str(e))
        return 1

    if summary.has_failures:
        logger.warning("Build complete with failures (see summary above)")
    else:
        logger.success("Build complete!")
    logger.newline()
    if config.is_macos_host and not any(r.signed for r in summary.artifacts):
        print_credentials_help()

    return 0


if __name__ == "__main__":
    sys.exit(main())
