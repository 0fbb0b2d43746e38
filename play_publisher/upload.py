"""
Uploads app files to Google Play and publishes them to a release track.

One run is one edit: open it, upload every binary (plus mapping and expansion
files), assign the new version codes to the track, then commit. Nothing is
visible on Google Play unless the final commit goes through.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from .errors import AmbiguousCommitError, DuplicateArtifactError, PublishError
from .expansion import EXPANSION_TYPES, ExpansionFileSet
from .metadata import AppFileFormat, UploadCandidate
from .session import EditSession, EditSessionManager, ExistingBinary, PublisherClient
from .tracks import TrackAssigner, build_release

logger = logging.getLogger(__name__)


class State(Enum):
    IDLE = 'idle'
    SESSION_OPENED = 'session_opened'
    EXISTING_STATE_FETCHED = 'existing_state_fetched'
    UPLOADING = 'uploading'
    EXPANSION_FILES_HANDLED = 'expansion_files_handled'
    TRACK_ASSIGNED = 'track_assigned'
    COMMITTING = 'committing'
    COMMIT_UNCERTAIN = 'commit_uncertain'
    COMMITTED = 'committed'
    FAILED = 'failed'


@dataclass
class UploadRequest:
    application_id: str
    candidates: list[UploadCandidate]
    track: str
    rollout_fraction: float | None = None
    expansion_files: dict[int, ExpansionFileSet] = field(default_factory=dict)
    use_previous_expansion_files_if_missing: bool = False
    release_notes: dict[str, str] = field(default_factory=dict)
    in_app_update_priority: int | None = None


@dataclass
class PublishResult:
    ok: bool
    state: State
    version_codes: list[int] = field(default_factory=list)
    error: PublishError | None = None


class UploadOrchestrator:
    def __init__(self, client: PublisherClient):
        self.client = client
        self.sessions = EditSessionManager(client)
        self.tracks = TrackAssigner(client)
        self.state = State.IDLE

    def run(self, request: UploadRequest) -> PublishResult:
        self.state = State.IDLE
        uploaded: list[int] = []
        try:
            return self._run(request, uploaded)
        except PublishError as e:
            self.state = State.FAILED
            return PublishResult(False, self.state, sorted(uploaded), e)

    def _run(self, request: UploadRequest, uploaded: list[int]) -> PublishResult:
        session = self.sessions.open(request.application_id)
        self.state = State.SESSION_OPENED

        existing_apks = self.sessions.existing_apks(session)
        existing = existing_apks + self.sessions.existing_bundles(session)
        existing_hashes = {b.sha1.lower() for b in existing}
        self.state = State.EXISTING_STATE_FETCHED

        self.state = State.UPLOADING
        logger.info(
            'Uploading %d file(s) with application ID: %s', len(request.candidates), request.application_id
        )
        for candidate in request.candidates:
            uploaded.append(self._upload(session, candidate, existing_hashes))

        if request.expansion_files or request.use_previous_expansion_files_if_missing:
            if any(c.format == AppFileFormat.BUNDLE for c in request.candidates):
                logger.warning('Ignoring expansion files, as they are not supported for AAB files')
            else:
                self._apply_expansion_files(session, request, sorted(uploaded), existing_apks)
        self.state = State.EXPANSION_FILES_HANDLED

        release = build_release(
            uploaded, request.rollout_fraction, request.release_notes, request.in_app_update_priority
        )
        track = self.tracks.resolve_track_name(session, request.track)
        self.tracks.assign(session, track, release)
        self.state = State.TRACK_ASSIGNED

        logger.info('Applying changes to Google Play...')
        self.state = State.COMMITTING
        try:
            self.sessions.commit(session)
        except AmbiguousCommitError as e:
            self.state = State.COMMIT_UNCERTAIN
            logger.warning('- An error occurred while applying changes: %s', e)
            if not self.sessions.verify_applied(session.application_id, release.version_codes):
                self.state = State.FAILED
                return PublishResult(False, self.state, release.version_codes, e)

        self.state = State.COMMITTED
        logger.info('Changes were successfully applied to Google Play')
        return PublishResult(True, self.state, release.version_codes)

    def _upload(self, session: EditSession, candidate: UploadCandidate, existing_hashes: set[str]) -> int:
        logger.info(
            '\n      %s file: %s\n    SHA-1 hash: %s\n   versionCode: %d\n minSdkVersion: %s',
            candidate.format,
            candidate.path,
            candidate.sha1,
            candidate.version_code,
            candidate.metadata.min_sdk_version,
        )

        if candidate.sha1.lower() in existing_hashes:
            raise DuplicateArtifactError(
                'This file already exists in the Google Play account; it cannot be uploaded again',
                [str(candidate.path)],
            )

        if candidate.format == AppFileFormat.BUNDLE:
            res = self.client.upload_bundle(session.application_id, session.edit_id, candidate.path)
        else:
            res = self.client.upload_apk(session.application_id, session.edit_id, candidate.path)
        version_code = res.version_code

        mapping = candidate.mapping_file
        if mapping is not None:
            # Google Play rejects empty mapping files
            if mapping.stat().st_size == 0:
                logger.info('Ignoring empty obfuscation mapping file: %s', mapping)
            else:
                logger.info('Uploading associated obfuscation mapping file: %s', mapping)
                self.client.upload_deobfuscation_file(session.application_id, session.edit_id, version_code, mapping)

        return version_code

    # ############################################################
    # #################### Expansion files #######################
    # ############################################################
    def _apply_expansion_files(
        self,
        session: EditSession,
        request: UploadRequest,
        version_codes: list[int],
        existing_apks: list[ExistingBinary],
    ) -> None:
        reuse = request.use_previous_expansion_files_if_missing
        latest: dict[str, int | None] = {t: None for t in EXPANSION_TYPES}
        if reuse:
            existing_codes = sorted({b.version_code for b in existing_apks}, reverse=True)
            latest = {t: self._latest_expansion_version(session, existing_codes, t) for t in EXPANSION_TYPES}

        for version_code in version_codes:
            file_set = request.expansion_files.get(version_code) or ExpansionFileSet()
            logger.info('Handling expansion files for versionCode %d', version_code)
            for type_ in EXPANSION_TYPES:
                path = file_set.get(type_)
                if path is not None:
                    logger.info('- Uploading new %s expansion file: %s', type_, path.name)
                    self.client.upload_expansion_file(
                        session.application_id, session.edit_id, version_code, type_, path
                    )
                    latest[type_] = version_code
                elif reuse and latest[type_] is not None:
                    logger.info('- Applying %s expansion file from previous APK: %d', type_, latest[type_])
                    self.client.reference_expansion_file(
                        session.application_id, session.edit_id, version_code, type_, latest[type_]
                    )
                elif reuse:
                    logger.info(
                        '- No %s expansion file to apply, and no existing APK with a %s expansion file was found',
                        type_,
                        type_,
                    )
                else:
                    logger.info('- No %s expansion file to apply', type_)

    def _latest_expansion_version(self, session: EditSession, version_codes: list[int], type_: str) -> int | None:
        """Newest of the given (newest-first) version codes that has an expansion file of this type."""
        for version_code in version_codes:
            file = self.client.get_expansion_file(session.application_id, session.edit_id, version_code, type_)
            if file is None:
                continue
            if int(file.get('fileSize') or 0) > 0:
                return version_code
            if int(file.get('referencesVersion') or 0) > 0:
                return int(file['referencesVersion'])
        return None
