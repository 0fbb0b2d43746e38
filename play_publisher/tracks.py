import logging
from dataclasses import dataclass, field

from .session import EditSession, PublisherClient

logger = logging.getLogger(__name__)

STATUS_IN_PROGRESS = 'inProgress'
STATUS_COMPLETED = 'completed'


class ReleaseTrack(str):
    """
    A release track name. Google Play has a few built-in tracks, but custom
    (closed testing) tracks can have any name, so this is an open set.
    """

    INTERNAL: 'ReleaseTrack'
    ALPHA: 'ReleaseTrack'
    BETA: 'ReleaseTrack'
    PRODUCTION: 'ReleaseTrack'

    def __new__(cls, name: str):
        return super().__new__(cls, name.strip().lower())

    @property
    def is_builtin(self) -> bool:
        return self in BUILTIN_TRACKS


ReleaseTrack.INTERNAL = ReleaseTrack('internal')
ReleaseTrack.ALPHA = ReleaseTrack('alpha')
ReleaseTrack.BETA = ReleaseTrack('beta')
ReleaseTrack.PRODUCTION = ReleaseTrack('production')
BUILTIN_TRACKS = (ReleaseTrack.INTERNAL, ReleaseTrack.ALPHA, ReleaseTrack.BETA, ReleaseTrack.PRODUCTION)


def format_percentage(value: float) -> str:
    # 12.5 -> '12.5', 100.0 -> '100'
    return f'{value:.4f}'.rstrip('0').rstrip('.')


@dataclass
class ReleaseDescriptor:
    version_codes: list[int]
    status: str
    user_fraction: float | None = None
    release_notes: dict[str, str] = field(default_factory=dict)
    in_app_update_priority: int | None = None

    def to_body(self) -> dict:
        body: dict = {
            'versionCodes': [str(vc) for vc in self.version_codes],
            'status': self.status,
        }
        if self.user_fraction is not None:
            body['userFraction'] = self.user_fraction
        if self.release_notes:
            body['releaseNotes'] = [{'language': lang, 'text': text} for lang, text in self.release_notes.items()]
        if self.in_app_update_priority is not None:
            body['inAppUpdatePriority'] = self.in_app_update_priority
        return body


def build_release(
    version_codes,
    user_fraction: float | None,
    release_notes: dict[str, str] | None = None,
    in_app_update_priority: int | None = None,
) -> ReleaseDescriptor:
    # Google Play wants no fraction at all unless 0 < f < 1, and such a release is done rather than in progress
    staged = user_fraction is not None and 0 < user_fraction < 1
    return ReleaseDescriptor(
        version_codes=sorted(set(version_codes)),
        status=STATUS_IN_PROGRESS if staged else STATUS_COMPLETED,
        user_fraction=user_fraction if staged else None,
        release_notes=dict(release_notes or {}),
        in_app_update_priority=in_app_update_priority,
    )


class TrackAssigner:
    def __init__(self, client: PublisherClient):
        self.client = client

    def assign(self, session: EditSession, track: str, release: ReleaseDescriptor) -> dict:
        """Replaces the releases of `track` with `release`; returns the release as confirmed by the server."""
        if release.user_fraction is not None:
            percent = format_percentage(release.user_fraction * 100)
            logger.info('Setting rollout to target %s%% of %s track users', percent, track)
        else:
            logger.info('Setting rollout to target 100%% of %s track users', track)
        if release.in_app_update_priority is not None:
            logger.info('Setting in-app update priority to %d', release.in_app_update_priority)

        body = {'track': track, 'releases': [release.to_body()]}
        updated = self.client.update_track(session.application_id, session.edit_id, track, body)

        confirmed = (updated.get('releases') or [{}])[0]
        codes = confirmed.get('versionCodes') or release.to_body()['versionCodes']
        logger.info('The %s release track will now contain the version code(s): %s', track, ', '.join(codes))
        return confirmed

    def resolve_track_name(self, session: EditSession, name: str) -> str:
        """
        Returns the remote spelling of `name` (custom track names are
        case-sensitive on Google Play), or `name` itself if the track isn't listed.
        """
        tracks = self.client.list_tracks(session.application_id, session.edit_id)
        for t in tracks:
            if t.get('track', '').lower() == name.lower():
                return t['track']

        if not ReleaseTrack(name).is_builtin:
            # Tracks without any releases aren't listed
            logger.warning(
                "Release track '%s' could not be found on Google Play\n"
                '- This may be because this track does not yet have any releases, so we will continue...\n'
                '- Note: Custom track names are case-sensitive; double-check your configuration, if this build fails',
                name,
            )
        return name

    def find_release_notes(self, session: EditSession, version_code: int) -> dict[str, str]:
        """Release notes of the first existing release that contains `version_code`."""
        for t in self.client.list_tracks(session.application_id, session.edit_id):
            for release in t.get('releases') or []:
                codes = [int(vc) for vc in release.get('versionCodes') or []]
                if version_code in codes and release.get('releaseNotes'):
                    return {n['language']: n['text'] for n in release['releaseNotes']}
        return {}

    def track_version_codes(self, session: EditSession, track: str) -> set[int]:
        for t in self.client.list_tracks(session.application_id, session.edit_id):
            if t.get('track', '').lower() == track.lower():
                return {int(vc) for r in t.get('releases') or [] for vc in r.get('versionCodes') or []}
        return set()
