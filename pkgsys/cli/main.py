"""
Main CLI entry point for pkgsys

Commands with short aliases:
- pkgsys install / pkgsys i
- pkgsys remove / pkgsys erase / pkgsys e
- pkgsys available / pkgsys av
- pkgsys installed / pkgsys q
"""

import argparse
import logging
import sys
from dataclasses import replace

from .. import __version__
from ..core.audit import AuditLogger
from ..core.config import ConfigError, SystemConfig, UiMode, load_config, parse_stage, parse_ui_mode
from ..core.transaction import PackageSystem
from . import colors
from .presenter import TerminalPresenter, WhiptailPresenter

# Exit status when the user declined a license
EXIT_CANCELED = 2


def check_dependencies() -> list:
    """Check for required Python modules.

    Returns:
        List of (package, purpose) tuples for missing modules
    """
    missing = []

    # libsolv bindings ship with the distribution, not on PyPI
    try:
        import solv  # noqa: F401
    except ImportError:
        missing.append(('python3-solv', 'dependency resolution'))

    try:
        import rpm  # noqa: F401
    except ImportError:
        missing.append(('python3-rpm', 'package commit'))

    try:
        import zstandard  # noqa: F401
    except ImportError:
        missing.append(('python3-zstandard', 'synthesis decompression'))

    return missing


def print_missing_dependencies(missing: list):
    print("ERROR: Missing required Python modules:\n", file=sys.stderr)
    for pkg, purpose in missing:
        print(f"  - {pkg} ({purpose})", file=sys.stderr)
    print("\nInstall with:", file=sys.stderr)
    print(f"  urpmi {' '.join(pkg for pkg, _ in missing)}", file=sys.stderr)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all commands and aliases."""

    parser = argparse.ArgumentParser(
        prog='pkgsys',
        description='Install and remove packages as one checked transaction',
        epilog='Use "pkgsys <command> --help" for command-specific help.'
    )

    parser.add_argument(
        '--version', '-V',
        action='version',
        version=f'pkgsys {__version__}'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Verbose output'
    )
    parser.add_argument(
        '--nocolor',
        action='store_true',
        help='Disable colored output'
    )
    parser.add_argument(
        '--root',
        metavar='DIR',
        help='Operate on the system installed under DIR'
    )
    parser.add_argument(
        '--stage',
        choices=['normal', 'initial', 'continue'],
        help='Installation stage (default: from configuration)'
    )
    parser.add_argument(
        '--ui',
        choices=['commandline', 'popup'],
        help='How questions are asked (default: from configuration)'
    )
    parser.add_argument(
        '--yes', '-y',
        action='store_true',
        help='Answer yes to all questions, licenses included'
    )

    subparsers = parser.add_subparsers(
        dest='command',
        title='commands',
        metavar='<command>'
    )

    # =========================================================================
    # install / i
    # =========================================================================
    install_parser = subparsers.add_parser(
        'install', aliases=['i'],
        help='Install packages'
    )
    install_parser.add_argument(
        'packages', nargs='+',
        help='Package names to install'
    )
    install_parser.add_argument(
        '--remove', '-r',
        action='append', default=[], metavar='PACKAGE',
        help='Also remove PACKAGE in the same transaction (repeatable)'
    )

    # =========================================================================
    # remove / erase / e
    # =========================================================================
    remove_parser = subparsers.add_parser(
        'remove', aliases=['erase', 'e'],
        help='Remove packages'
    )
    remove_parser.add_argument(
        'packages', nargs='+',
        help='Package names to remove'
    )

    # =========================================================================
    # available / av
    # =========================================================================
    available_parser = subparsers.add_parser(
        'available', aliases=['av'],
        help='Check whether packages are available in the repositories'
    )
    available_parser.add_argument(
        'names', nargs='+',
        help='Package names (or capabilities with --provides)'
    )
    available_parser.add_argument(
        '--provides',
        action='store_true',
        help='Match any package providing the name, not just the package name'
    )

    # =========================================================================
    # installed / q
    # =========================================================================
    installed_parser = subparsers.add_parser(
        'installed', aliases=['q'],
        help='Check whether packages are installed'
    )
    installed_parser.add_argument(
        'names', nargs='+',
        help='Package names (or capabilities with --provides)'
    )
    installed_parser.add_argument(
        '--provides',
        action='store_true',
        help='Match any package providing the name, not just the package name'
    )

    return parser


def build_config(args) -> SystemConfig:
    """Configuration file and environment, overridden by the command line.

    Raises:
        ConfigError: If a configured value is invalid
    """
    config = load_config()
    overrides = {}
    if args.root:
        overrides['root'] = args.root
    if args.stage:
        overrides['stage'] = parse_stage(args.stage)
    if args.ui:
        overrides['ui_mode'] = parse_ui_mode(args.ui)
    if args.yes:
        overrides['auto_confirm'] = True
    return replace(config, **overrides)


def create_presenter(config: SystemConfig):
    if config.ui_mode is UiMode.POPUP:
        if not WhiptailPresenter.available():
            raise ConfigError("Popup UI needs whiptail, which is not installed")
        return WhiptailPresenter()
    return TerminalPresenter(auto=config.auto_confirm)


# =============================================================================
# Command handlers
# =============================================================================

def _transaction_status(system: PackageSystem, ok: bool) -> int:
    if ok:
        print(colors.success("Transaction completed"))
        return 0
    if system.last_operation_canceled():
        print(colors.warning("License not accepted, nothing was changed"))
        return EXIT_CANCELED

    ctx = system.last_context
    reason = ctx.reason.value if ctx and ctx.reason else "unknown"
    packages = (ctx.failed or ctx.remaining) if ctx else []
    detail = f": {', '.join(packages)}" if packages else ""
    print(colors.error(f"Transaction failed ({reason}){detail}"), file=sys.stderr)
    return 1


def cmd_install(args, system: PackageSystem) -> int:
    ok = system.install_and_remove(args.packages, args.remove)
    return _transaction_status(system, ok)


def cmd_remove(args, system: PackageSystem) -> int:
    ok = system.remove(args.packages)
    return _transaction_status(system, ok)


def cmd_available(args, system: PackageSystem) -> int:
    prober = system.prober
    status = 0
    for name in args.names:
        if args.provides:
            found = prober.available(name)
        else:
            found = prober.package_available(name)

        if found is None:
            print(colors.warning("No enabled repository"), file=sys.stderr)
            return 1
        if found:
            print(f"{name}: {colors.success('available')}")
        else:
            print(f"{name}: {colors.error('not available')}")
            status = 1
    return status


def cmd_installed(args, system: PackageSystem) -> int:
    prober = system.prober
    status = 0
    for name in args.names:
        if args.provides:
            found = prober.installed(name)
        else:
            found = prober.package_installed(name)

        if found:
            print(f"{name}: {colors.success('installed')}")
        else:
            print(f"{name}: {colors.error('not installed')}")
            status = 1
    return status


COMMANDS = {
    'install': cmd_install, 'i': cmd_install,
    'remove': cmd_remove, 'erase': cmd_remove, 'e': cmd_remove,
    'available': cmd_available, 'av': cmd_available,
    'installed': cmd_installed, 'q': cmd_installed,
}


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(name)s - %(levelname)s - %(message)s',
            stream=sys.stderr
        )

    colors.init(nocolor=args.nocolor)

    if not args.command:
        parser.print_help()
        return 1

    missing = check_dependencies()
    if missing:
        print_missing_dependencies(missing)
        return 1

    try:
        config = build_config(args)
        presenter = create_presenter(config)
    except ConfigError as e:
        print(colors.error(f"Error: {e}"), file=sys.stderr)
        return 1

    audit = AuditLogger()
    system = PackageSystem.for_system(config, presenter, audit=audit)

    try:
        return COMMANDS[args.command](args, system)

    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130

    except Exception as e:
        if args.verbose:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {e}")
        return 1

    finally:
        audit.close()


if __name__ == '__main__':
    sys.exit(main())
