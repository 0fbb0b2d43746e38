import logging

from .errors import AmbiguousCommitError, DiscoveryError, PublishError
from .session import EditSessionManager, PublisherClient
from .tracks import TrackAssigner, build_release
from .upload import PublishResult, State

logger = logging.getLogger(__name__)


def assign_to_track(
    client: PublisherClient,
    application_id: str,
    version_codes: list[int],
    track: str,
    rollout_fraction: float | None = None,
    in_app_update_priority: int | None = None,
) -> PublishResult:
    """Moves version codes that already exist on Google Play to `track`."""
    sessions = EditSessionManager(client)
    tracks = TrackAssigner(client)
    version_codes = sorted(set(version_codes))
    state = State.IDLE

    try:
        session = sessions.open(application_id)
        state = State.SESSION_OPENED

        track = tracks.resolve_track_name(session, track)
        logger.info(
            "Assigning %d version(s) with application ID %s to '%s' release track",
            len(version_codes),
            application_id,
            track,
        )

        present = {b.version_code for b in sessions.existing_binaries(session)}
        missing = [vc for vc in version_codes if vc not in present]
        if missing:
            raise DiscoveryError(
                'Assignment will fail, as these versions do not exist on Google Play: '
                + ', '.join(str(vc) for vc in missing)
            )
        state = State.EXISTING_STATE_FETCHED

        notes = tracks.find_release_notes(session, version_codes[-1])
        release = build_release(version_codes, rollout_fraction, notes, in_app_update_priority)
        tracks.assign(session, track, release)
        state = State.TRACK_ASSIGNED

        logger.info('Applying changes to Google Play...')
        state = State.COMMITTING
        try:
            sessions.commit(session)
        except AmbiguousCommitError as e:
            state = State.COMMIT_UNCERTAIN
            logger.warning('- An error occurred while applying changes: %s', e)
            # Unlike an upload, the version codes existed before, so check the track itself
            check = sessions.open(application_id)
            if not set(version_codes) <= tracks.track_version_codes(check, track):
                logger.error('The %s release track does not contain the version code(s)', track)
                return PublishResult(False, State.FAILED, version_codes, e)
    except PublishError as e:
        logger.debug('Assignment stopped in state %s', state.value)
        return PublishResult(False, State.FAILED, version_codes, e)

    logger.info('Changes were successfully applied to Google Play')
    return PublishResult(True, State.COMMITTED, version_codes)
