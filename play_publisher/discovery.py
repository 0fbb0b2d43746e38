import logging
from dataclasses import dataclass, field
from pathlib import Path

from .config import PublishConfig
from .errors import DiscoveryError
from .expansion import ExpansionFileSet, collect_expansion_files
from .files import find_files
from .metadata import AppFileFormat, MetadataError, MetadataReader, UploadCandidate

logger = logging.getLogger(__name__)


@dataclass
class UploadPlan:
    application_id: str
    candidates: list[UploadCandidate]
    expansion_files: dict[int, ExpansionFileSet] = field(default_factory=dict)

    @property
    def version_codes(self) -> set[int]:
        return {c.version_code for c in self.candidates}


def read_app_files(base_dir: Path, pattern: str, reader: MetadataReader) -> list[UploadCandidate]:
    paths = find_files(base_dir, pattern)
    if not paths:
        raise DiscoveryError(f"No AAB or APK files matching the pattern '{pattern}' could be found")

    candidates = []
    for rel in paths:
        path = Path(base_dir) / rel
        try:
            metadata = reader.read(path)
        except MetadataError as e:
            raise DiscoveryError(f'File does not appear to be a valid AAB or APK: {path}', [str(e)]) from e
        logger.debug('Found %s file with version code %d: %s', metadata.format, metadata.version_code, rel)
        candidates.append(UploadCandidate(path, metadata))
    return candidates


def single_application_id(candidates: list[UploadCandidate], pattern: str) -> str:
    application_ids = sorted({c.application_id for c in candidates})
    if len(application_ids) != 1:
        raise DiscoveryError(
            f"Multiple files matched the pattern '{pattern}', but they have inconsistent application IDs:",
            application_ids,
        )
    return application_ids[0]


def attach_mapping_files(base_dir: Path, candidates: list[UploadCandidate], pattern: str) -> None:
    mapping_paths = find_files(base_dir, pattern)
    if not mapping_paths:
        raise DiscoveryError(
            f"No obfuscation mapping files matching the pattern '{pattern}' could be found; no files will be uploaded"
        )

    if len(mapping_paths) == 1:
        # One mapping file applies to every app file
        for c in candidates:
            c.mapping_file = Path(base_dir) / mapping_paths[0]
    elif len(mapping_paths) == len(candidates):
        # Typically one per flavor dimension, e.g. build/outputs/apk/<dim>/release/app-release.apk and
        # build/outputs/mapping/<dim>/release/mapping.txt; both lists are sorted, so pair them by index
        for c, rel in zip(candidates, mapping_paths):
            c.mapping_file = Path(base_dir) / rel
    else:
        raise DiscoveryError(
            f'There are {len(candidates)} AAB/APKs to be uploaded, but only {len(mapping_paths)} obfuscation mapping '
            f"files were found matching the pattern '{pattern}':",
            [str(c.path) for c in candidates] + mapping_paths,
        )


def discover(base_dir: Path, config: PublishConfig, reader: MetadataReader) -> UploadPlan:
    """Finds and validates everything to upload, before any call to Google Play is made."""
    candidates = read_app_files(base_dir, config.files_pattern, reader)
    application_id = single_application_id(candidates, config.files_pattern)

    # e.g. a release job may build a bundle for upload, but also a fat APK for testing
    if len({c.format for c in candidates}) > 1:
        logger.warning('Both AAB and APK files were found; only the AAB files will be uploaded')
        candidates = [c for c in candidates if c.format == AppFileFormat.BUNDLE]

    if config.deobfuscation_files_pattern:
        attach_mapping_files(base_dir, candidates, config.deobfuscation_files_pattern)

    plan = UploadPlan(application_id, candidates)
    if config.expansion_files_pattern:
        paths = [Path(base_dir) / p for p in find_files(base_dir, config.expansion_files_pattern)]
        plan.expansion_files = collect_expansion_files(
            paths, application_id, plan.version_codes, config.use_previous_expansion_files_if_missing
        )
    return plan
