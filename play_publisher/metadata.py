import hashlib
import os
import shlex
import subprocess
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

import regex as re

ANDROID_NS = '{http://schemas.android.com/apk/res/android}'


class AppFileFormat(Enum):
    APK = 'APK'
    BUNDLE = 'AAB'
    UNKNOWN = 'unknown'

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ArtifactMetadata:
    application_id: str
    version_code: int
    min_sdk_version: str
    format: AppFileFormat


class MetadataReader(Protocol):
    def read(self, path: Path) -> ArtifactMetadata: ...


class MetadataError(Exception):
    pass


def file_format(path: Path) -> AppFileFormat:
    suffix = path.suffix.lower()
    if suffix == '.aab':
        return AppFileFormat.BUNDLE
    if suffix == '.apk':
        return AppFileFormat.APK
    return AppFileFormat.UNKNOWN


def sha1_hex(path: Path) -> str:
    h = hashlib.sha1()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(1 << 20), b''):
            h.update(chunk)
    return h.hexdigest().lower()


@dataclass
class UploadCandidate:
    path: Path
    metadata: ArtifactMetadata
    mapping_file: Path | None = None
    _sha1: str | None = field(default=None, repr=False, compare=False)

    @property
    def application_id(self) -> str:
        return self.metadata.application_id

    @property
    def version_code(self) -> int:
        return self.metadata.version_code

    @property
    def format(self) -> AppFileFormat:
        return self.metadata.format

    @property
    def sha1(self) -> str:
        if self._sha1 is None:
            self._sha1 = sha1_hex(self.path)
        return self._sha1


# ############################################################
# ################ Android SDK tool reader ###################
# ############################################################
run = lambda cmd: subprocess.run(cmd, capture_output=True, encoding='utf-8')  # noqa: E731


def parse_badging(output: str) -> tuple[str, int, str]:
    """Parses ``aapt2 dump badging`` output into (applicationId, versionCode, minSdkVersion)."""
    pkg = re.search(r"^package: name='([^']+)' versionCode='(\d+)'", output, re.M)
    if not pkg:
        raise MetadataError('No package line in aapt2 output')
    sdk = re.search(r"^(?:minSdkVersion|sdkVersion):'([^']+)'", output, re.M)
    return pkg.group(1), int(pkg.group(2)), sdk.group(1) if sdk else '1'


def parse_manifest(xml: str) -> tuple[str, int, str]:
    """Parses the XML printed by ``bundletool dump manifest``."""
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as e:
        raise MetadataError(f'Unreadable manifest: {e}') from e

    app_id = root.get('package')
    version_code = root.get(f'{ANDROID_NS}versionCode')
    if not app_id or not version_code:
        raise MetadataError('Manifest has no package or versionCode')
    uses_sdk = root.find('uses-sdk')
    min_sdk = uses_sdk.get(f'{ANDROID_NS}minSdkVersion') if uses_sdk is not None else None
    return app_id, int(version_code), min_sdk or '1'


class AndroidToolsMetadataReader:
    """Reads app metadata with ``aapt2`` (APK) and ``bundletool`` (AAB)."""

    def __init__(self, aapt2: str | None = None, bundletool: str | None = None):
        self.aapt2 = shlex.split(aapt2 or os.getenv('AAPT2', 'aapt2'))
        self.bundletool = shlex.split(bundletool or os.getenv('BUNDLETOOL', 'bundletool'))

    def read(self, path: Path) -> ArtifactMetadata:
        fmt = file_format(path)
        if fmt == AppFileFormat.BUNDLE:
            cmd = [*self.bundletool, 'dump', 'manifest', f'--bundle={path}']
            parse = parse_manifest
        else:
            cmd = [*self.aapt2, 'dump', 'badging', str(path)]
            parse = parse_badging

        try:
            p = run(cmd)
        except FileNotFoundError as e:
            raise MetadataError(f'{cmd[0]} is not installed') from e
        if p.returncode:
            raise MetadataError(p.stderr.strip() or f'{cmd[0]} exited with {p.returncode}')

        app_id, version_code, min_sdk = parse(p.stdout)
        if fmt == AppFileFormat.UNKNOWN:
            fmt = AppFileFormat.APK
        return ArtifactMetadata(app_id, version_code, min_sdk, fmt)
