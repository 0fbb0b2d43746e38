"""
Error taxonomy for a publishing run.

Every failure carries a ``kind`` tag and can render itself as a multi-line,
human-readable report. Remote failures are converted into ``ApiError`` at the
client boundary, so nothing downstream needs to understand ``HttpError``.
"""

from __future__ import annotations

import json

PERMISSION_HINT = 'The API credentials provided do not have permission to apply these changes'


class PublishError(Exception):
    kind = 'error'

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.details = list(details or [])

    def report(self) -> str:
        lines = [self.message]
        lines += [f'- {d}' for d in self.details]
        return '\n'.join(lines)


class ConfigurationError(PublishError):
    """Holds every configuration problem found, not just the first."""

    kind = 'configuration'

    def __init__(self, problems: list[str]):
        super().__init__('Invalid configuration:', problems)
        self.problems = self.details


class DiscoveryError(PublishError):
    kind = 'discovery'


class InvalidNamingError(PublishError):
    kind = 'invalid_naming'


class AuthenticationError(PublishError):
    kind = 'authentication'


class DuplicateArtifactError(PublishError):
    kind = 'duplicate'


class ApiError(PublishError):
    kind = 'api'

    def __init__(self, message: str, status: int | None = None, messages: list[str] | None = None):
        super().__init__(message, messages)
        self.status = status
        self.messages = self.details

    def report(self) -> str:
        if not self.messages:
            return f'Unknown error: {self.message}'
        return '\n'.join(f'- {m}' for m in self.messages)

    @classmethod
    def from_http_error(cls, e) -> ApiError:
        """Extracts status and error messages from a ``googleapiclient`` ``HttpError``."""
        status = getattr(e.resp, 'status', None)
        messages = _error_messages(getattr(e, 'content', b''))
        if not messages and status == 401:
            messages = [PERMISSION_HINT]
        reason = getattr(e, 'reason', None) or str(e)
        return cls(f'HTTP {status}: {reason}', status, messages)


class AmbiguousCommitError(PublishError):
    """The commit request got no definitive answer, e.g. it timed out."""

    kind = 'ambiguous_commit'


def _error_messages(content) -> list[str]:
    if isinstance(content, bytes):
        content = content.decode(errors='replace')
    try:
        data = json.loads(content or '')
    except json.JSONDecodeError:
        return []
    if not isinstance(data, dict) or not isinstance(data.get('error'), dict):
        return []

    error = data['error']
    messages = [e['message'] for e in error.get('errors') or [] if isinstance(e, dict) and e.get('message')]
    if not messages and error.get('message'):
        messages = [error['message']]
    return messages
