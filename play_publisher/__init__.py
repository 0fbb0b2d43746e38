"""Publish Android app files (APK/AAB) to Google Play release tracks."""

from .assign import assign_to_track
from .errors import (
    AmbiguousCommitError,
    ApiError,
    AuthenticationError,
    ConfigurationError,
    DiscoveryError,
    DuplicateArtifactError,
    InvalidNamingError,
    PublishError,
)
from .tracks import ReleaseTrack, build_release
from .upload import PublishResult, UploadOrchestrator, UploadRequest

__version__ = '0.1.0'

__all__ = [
    'AmbiguousCommitError',
    'ApiError',
    'AuthenticationError',
    'ConfigurationError',
    'DiscoveryError',
    'DuplicateArtifactError',
    'InvalidNamingError',
    'PublishError',
    'PublishResult',
    'ReleaseTrack',
    'UploadOrchestrator',
    'UploadRequest',
    'assign_to_track',
    'build_release',
]
