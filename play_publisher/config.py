import logging
from dataclasses import dataclass, field

import regex as re

from .errors import ConfigurationError
from .tracks import ReleaseTrack, format_percentage

logger = logging.getLogger(__name__)

DEFAULT_FILES_PATTERN = '**/build/outputs/**/*.aab, **/build/outputs/**/*.apk'
DEFAULT_TRACK_NAME = ReleaseTrack.PRODUCTION
DEFAULT_ROLLOUT_PERCENT = 100.0

# BCP 47 language codes as used by Google Play, e.g. 'be' or 'en-GB'
REGEX_LANGUAGE = re.compile(r'^[a-z]{2,3}([-_][0-9A-Z]{2,})?$')
MAX_RELEASE_NOTES_LENGTH = 500
# Google Play's track names: lowercase letters, digits, '-' and '_' (custom tracks may also be mixed case)
REGEX_TRACK_NAME = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_:-]*$')


def parse_rollout_percentage(value) -> float:
    """Accepts e.g. `12.5`, `'12.5'` or `'12.5%'`; falls back to 100, with a warning, when unparsable."""
    if value is None:
        return DEFAULT_ROLLOUT_PERCENT
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace('%', '').strip())
    except ValueError:
        logger.warning(
            "Rollout percentage '%s' is not a number; using %s%%", value, format_percentage(DEFAULT_ROLLOUT_PERCENT)
        )
        return DEFAULT_ROLLOUT_PERCENT


def parse_version_codes(value: str) -> list[int]:
    """Comma or whitespace separated version codes; anything non-numeric is skipped."""
    return sorted({int(s) for s in re.split(r'[,\s]+', value or '') if s.strip().isdigit()})


def parse_release_notes(values: list[str]) -> dict[str, str]:
    """`['en-US=Bug fixes', 'de-DE=Fehlerbehebungen']` -> {'en-US': 'Bug fixes', ...}"""
    notes: dict[str, str] = {}
    for v in values or []:
        lang, sep, text = v.partition('=')
        if not sep:
            raise ConfigurationError([f"Release notes must look like 'language=text': {v}"])
        notes[lang.strip()] = text.strip()
    return notes


@dataclass
class TrackConfig:
    track_name: str = DEFAULT_TRACK_NAME
    rollout_percent: float = DEFAULT_ROLLOUT_PERCENT
    in_app_update_priority: int | None = None

    @property
    def track(self) -> ReleaseTrack:
        return ReleaseTrack(self.track_name)

    @property
    def rollout_fraction(self) -> float:
        return self.rollout_percent / 100

    def problems(self) -> list[str]:
        errors = []
        name = (self.track_name or '').strip()
        if not name:
            errors.append('Release track was not specified')
        elif not REGEX_TRACK_NAME.match(name):
            errors.append(f"'{name}' is not a valid release track")
        if not 0 <= self.rollout_percent <= 100:
            errors.append(f'{format_percentage(self.rollout_percent)}% is not a valid rollout percentage')

        if self.in_app_update_priority is not None and not 0 <= self.in_app_update_priority <= 5:
            errors.append(f'{self.in_app_update_priority} is not a valid in-app update priority (0-5)')
        return errors


@dataclass
class PublishConfig(TrackConfig):
    files_pattern: str = DEFAULT_FILES_PATTERN
    deobfuscation_files_pattern: str | None = None
    expansion_files_pattern: str | None = None
    use_previous_expansion_files_if_missing: bool = False
    release_notes: dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        errors = []
        if not (self.files_pattern or '').strip():
            errors.append('Relative path, or pattern to locate AAB or APK file(s) was not specified')
        errors += self.problems()

        for lang, text in self.release_notes.items():
            if not REGEX_LANGUAGE.match(lang):
                errors.append(f"Release notes language should be a language code like 'be' or 'en-GB': {lang}")
            if len(text) > MAX_RELEASE_NOTES_LENGTH:
                errors.append(f'Release notes for {lang} must be {MAX_RELEASE_NOTES_LENGTH} characters or fewer')

        if errors:
            raise ConfigurationError(errors)


@dataclass
class AssignConfig(TrackConfig):
    """Moves existing version codes to a track: given explicitly, or read from app files."""

    application_id: str | None = None
    version_codes: list[int] = field(default_factory=list)
    files_pattern: str | None = None

    @property
    def from_version_codes(self) -> bool:
        return not self.files_pattern

    def validate(self) -> None:
        errors = []
        if self.from_version_codes:
            if not (self.application_id or '').strip():
                errors.append('No application ID was specified')
            if not self.version_codes:
                errors.append('No version codes were specified')
        errors += self.problems()
        if errors:
            raise ConfigurationError(errors)
