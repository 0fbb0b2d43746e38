import argparse
import logging
import os
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from .assign import assign_to_track
from .config import (
    DEFAULT_FILES_PATTERN,
    DEFAULT_ROLLOUT_PERCENT,
    DEFAULT_TRACK_NAME,
    AssignConfig,
    PublishConfig,
    parse_release_notes,
    parse_rollout_percentage,
    parse_version_codes,
)
from .credentials import CREDENTIALS_ENV, load_service_account_json, service_account_credentials
from .discovery import discover, read_app_files, single_application_id
from .errors import ApiError, AuthenticationError, PublishError
from .metadata import AndroidToolsMetadataReader
from .session import DEFAULT_TIMEOUT, GooglePlayClient
from .upload import PublishResult, UploadOrchestrator, UploadRequest

console = Console(stderr=True)
logger = logging.getLogger('play_publisher')


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(message)s',
        handlers=[RichHandler(console=console, show_time=False, show_path=False, markup=False)],
    )
    # googleapiclient is chatty at INFO
    logging.getLogger('googleapiclient').setLevel(logging.WARNING)


def make_client(args) -> GooglePlayClient:
    info = load_service_account_json(args.service_account_json)
    return GooglePlayClient(service_account_credentials(info), timeout=args.timeout)


def exit_code(error: PublishError) -> int:
    return 2 if isinstance(error, (ApiError, AuthenticationError)) else 1


def report_failure(prefix: str, error: PublishError | None) -> None:
    if error is not None:
        console.print(f'{prefix}: {error.report()}', style='bold red', markup=False, highlight=False)
    console.print('No changes have been applied to the Google Play account', style='red')


def finish(prefix: str, result: PublishResult) -> int:
    if result.ok:
        console.print(f'Version code(s): {", ".join(str(vc) for vc in result.version_codes)}', style='bold green')
        return 0
    report_failure(prefix, result.error)
    return exit_code(result.error) if result.error else 1


# ############################################################
# ######################## Commands ##########################
# ############################################################
def cmd_upload(args) -> int:
    config = PublishConfig(
        track_name=args.track,
        rollout_percent=parse_rollout_percentage(args.rollout_percentage),
        in_app_update_priority=args.in_app_update_priority,
        files_pattern=args.files_pattern,
        deobfuscation_files_pattern=args.deobfuscation_files_pattern,
        expansion_files_pattern=args.expansion_files_pattern,
        use_previous_expansion_files_if_missing=args.use_previous_expansion_files_if_missing,
        release_notes=parse_release_notes(args.release_notes),
    )
    config.validate()

    plan = discover(args.workspace, config, AndroidToolsMetadataReader())
    request = UploadRequest(
        application_id=plan.application_id,
        candidates=plan.candidates,
        track=config.track,
        rollout_fraction=config.rollout_fraction,
        expansion_files=plan.expansion_files,
        use_previous_expansion_files_if_missing=config.use_previous_expansion_files_if_missing,
        release_notes=config.release_notes,
        in_app_update_priority=config.in_app_update_priority,
    )
    return finish('Upload failed', UploadOrchestrator(make_client(args)).run(request))


def cmd_assign(args) -> int:
    config = AssignConfig(
        track_name=args.track,
        rollout_percent=parse_rollout_percentage(args.rollout_percentage),
        in_app_update_priority=args.in_app_update_priority,
        application_id=args.package_name,
        version_codes=parse_version_codes(args.version_codes),
        files_pattern=args.files_pattern,
    )
    config.validate()

    application_id, version_codes = config.application_id, config.version_codes
    if not config.from_version_codes:
        candidates = read_app_files(args.workspace, config.files_pattern, AndroidToolsMetadataReader())
        application_id = single_application_id(candidates, config.files_pattern)
        version_codes = sorted({c.version_code for c in candidates})

    result = assign_to_track(
        make_client(args),
        application_id,
        version_codes,
        args.track.strip(),
        config.rollout_fraction,
        config.in_app_update_priority,
    )
    return finish('Assignment failed', result)


# ############################################################
# ######################### Parser ###########################
# ############################################################
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='play-publisher', description='Upload APK/AAB files to Google Play and assign them to release tracks.'
    )
    p.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        '--service-account-json',
        '--serviceAccountJson',
        dest='service_account_json',
        default=os.getenv(CREDENTIALS_ENV),
        help=f'Service account JSON string, path to a JSON file, or "-" for stdin (default: ${CREDENTIALS_ENV}).',
    )
    common.add_argument('--workspace', type=Path, default=Path('.'), help='Directory file patterns are relative to')
    common.add_argument(
        '--track',
        default=DEFAULT_TRACK_NAME,
        help='Track name, e.g. internal, alpha, beta, production (default: %(default)s).',
    )
    common.add_argument(
        '--rollout-percentage',
        '--rolloutPercentage',
        dest='rollout_percentage',
        default=DEFAULT_ROLLOUT_PERCENT,
        help='Staged rollout percentage, e.g. 12.5 or "12.5%%" (default: %(default)s).',
    )
    common.add_argument(
        '--in-app-update-priority', dest='in_app_update_priority', type=int, help='In-app update priority (0-5)'
    )
    common.add_argument(
        '--timeout', type=float, default=DEFAULT_TIMEOUT, help='Per request timeout in seconds (default: %(default)s).'
    )

    sub = p.add_subparsers(dest='command', required=True)

    up = sub.add_parser('upload', parents=[common], help='Upload AAB/APK files and assign them to a track')
    up.add_argument(
        '--files-pattern',
        '--filesPattern',
        dest='files_pattern',
        default=DEFAULT_FILES_PATTERN,
        help='Comma-separated glob(s) locating AAB or APK files (default: %(default)s).',
    )
    up.add_argument(
        '--deobfuscation-files-pattern',
        dest='deobfuscation_files_pattern',
        help='Glob(s) locating ProGuard/R8 mapping files; one for all files, or one per file.',
    )
    up.add_argument('--expansion-files-pattern', dest='expansion_files_pattern', help='Glob(s) locating OBB files.')
    up.add_argument(
        '--use-previous-expansion-files-if-missing',
        dest='use_previous_expansion_files_if_missing',
        action='store_true',
        help='Reuse the latest expansion files already on Google Play for APKs without their own.',
    )
    up.add_argument(
        '--release-notes',
        dest='release_notes',
        action='append',
        default=[],
        metavar='LANG=TEXT',
        help='Release notes for a language, e.g. "en-US=Bug fixes". Repeatable.',
    )
    up.set_defaults(func=cmd_upload)

    mv = sub.add_parser('assign', parents=[common], help='Assign existing version codes to a track')
    mv.add_argument('--package-name', '--packageName', dest='package_name', help='Android application ID')
    mv.add_argument('--version-codes', dest='version_codes', help='Comma or space separated version codes')
    mv.add_argument(
        '--files-pattern',
        '--filesPattern',
        dest='files_pattern',
        help='Read the application ID and version codes from these AAB/APK files instead',
    )
    mv.set_defaults(func=cmd_assign)
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        return args.func(args)
    except PublishError as e:
        report_failure('Upload failed' if args.command == 'upload' else 'Assignment failed', e)
        return exit_code(e)


if __name__ == '__main__':
    raise SystemExit(main())
