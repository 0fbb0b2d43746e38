"""
Edit sessions against the Google Play Developer API.

Every change made through the API happens inside an "edit": a transaction that
is invisible to anyone else until it is committed. ``PublisherClient`` is the
set of calls the publishing code needs; ``GooglePlayClient`` implements it on
top of ``googleapiclient`` and translates its exceptions into our own.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import google_auth_httplib2
import httplib2
from google.auth.exceptions import RefreshError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload
from tqdm import tqdm

from .errors import AmbiguousCommitError, ApiError, AuthenticationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120
DEOBFUSCATION_FILE_TYPE_PROGUARD = 'proguard'

MIME_APK = 'application/vnd.android.package-archive'
MIME_OCTET_STREAM = 'application/octet-stream'


@dataclass(frozen=True)
class ExistingBinary:
    version_code: int
    sha1: str


@dataclass
class EditSession:
    application_id: str
    edit_id: str
    committed: bool = field(default=False, compare=False)


class PublisherClient(Protocol):
    def insert_edit(self, application_id: str) -> str: ...

    def commit_edit(self, application_id: str, edit_id: str) -> None: ...

    def list_apks(self, application_id: str, edit_id: str) -> list[ExistingBinary]: ...

    def list_bundles(self, application_id: str, edit_id: str) -> list[ExistingBinary]: ...

    def upload_apk(self, application_id: str, edit_id: str, path: Path) -> ExistingBinary: ...

    def upload_bundle(self, application_id: str, edit_id: str, path: Path) -> ExistingBinary: ...

    def upload_deobfuscation_file(self, application_id: str, edit_id: str, version_code: int, path: Path) -> None: ...

    def get_expansion_file(self, application_id: str, edit_id: str, version_code: int, type_: str) -> dict | None: ...

    def upload_expansion_file(
        self, application_id: str, edit_id: str, version_code: int, type_: str, path: Path
    ) -> None: ...

    def reference_expansion_file(
        self, application_id: str, edit_id: str, version_code: int, type_: str, references_version: int
    ) -> None: ...

    def list_tracks(self, application_id: str, edit_id: str) -> list[dict]: ...

    def update_track(self, application_id: str, edit_id: str, track: str, body: dict) -> dict: ...


# ############################################################
# ################### Google Play client #####################
# ############################################################
def _upload_resumable(request, name: str) -> dict:
    # googleapiclient resumable upload loop; the bar only shows on a terminal
    response = None
    with tqdm(total=100, desc=name, unit='%', disable=None, leave=False) as pbar:
        while response is None:
            status, response = request.next_chunk()
            if status:
                pbar.update(int(status.progress() * 100) - pbar.n)
    return response


def _binary(res: dict) -> ExistingBinary:
    return ExistingBinary(int(res['versionCode']), (res.get('binary') or {}).get('sha1', '').lower())


class GooglePlayClient:
    def __init__(self, credentials, timeout: float = DEFAULT_TIMEOUT, service=None):
        if service is None:
            http = google_auth_httplib2.AuthorizedHttp(credentials, http=httplib2.Http(timeout=timeout))
            service = build('androidpublisher', 'v3', http=http, cache_discovery=False)
        self.service = service

    def _execute(self, request, upload: str | None = None):
        try:
            return _upload_resumable(request, upload) if upload else request.execute()
        except HttpError as e:
            raise ApiError.from_http_error(e) from e
        except RefreshError as e:
            raise AuthenticationError(f'Failed to authenticate with Google Play: {e}') from e
        except (TimeoutError, OSError) as e:
            raise ApiError(f'Network error: {e}') from e

    def insert_edit(self, application_id: str) -> str:
        edit = self._execute(self.service.edits().insert(packageName=application_id, body={}))
        return edit['id']

    def commit_edit(self, application_id: str, edit_id: str) -> None:
        try:
            self._execute(self.service.edits().commit(packageName=application_id, editId=edit_id))
        except ApiError as e:
            if isinstance(e.__cause__, TimeoutError):
                raise AmbiguousCommitError(f'No response while committing changes: {e.__cause__}') from e
            raise

    def list_apks(self, application_id: str, edit_id: str) -> list[ExistingBinary]:
        res = self._execute(self.service.edits().apks().list(packageName=application_id, editId=edit_id))
        return [_binary(apk) for apk in res.get('apks') or []]

    def list_bundles(self, application_id: str, edit_id: str) -> list[ExistingBinary]:
        res = self._execute(self.service.edits().bundles().list(packageName=application_id, editId=edit_id))
        return [_binary(bundle) for bundle in res.get('bundles') or []]

    def upload_apk(self, application_id: str, edit_id: str, path: Path) -> ExistingBinary:
        media = MediaFileUpload(str(path), mimetype=MIME_APK, resumable=True)
        req = self.service.edits().apks().upload(packageName=application_id, editId=edit_id, media_body=media)
        return _binary(self._execute(req, upload=path.name))

    def upload_bundle(self, application_id: str, edit_id: str, path: Path) -> ExistingBinary:
        media = MediaFileUpload(str(path), mimetype=MIME_OCTET_STREAM, resumable=True)
        req = self.service.edits().bundles().upload(packageName=application_id, editId=edit_id, media_body=media)
        return _binary(self._execute(req, upload=path.name))

    def upload_deobfuscation_file(self, application_id: str, edit_id: str, version_code: int, path: Path) -> None:
        media = MediaFileUpload(str(path), mimetype=MIME_OCTET_STREAM, resumable=True)
        req = (
            self.service.edits()
            .deobfuscationfiles()
            .upload(
                packageName=application_id,
                editId=edit_id,
                apkVersionCode=version_code,
                deobfuscationFileType=DEOBFUSCATION_FILE_TYPE_PROGUARD,
                media_body=media,
            )
        )
        self._execute(req, upload=path.name)

    def get_expansion_file(self, application_id: str, edit_id: str, version_code: int, type_: str) -> dict | None:
        req = (
            self.service.edits()
            .expansionfiles()
            .get(packageName=application_id, editId=edit_id, apkVersionCode=version_code, expansionFileType=type_)
        )
        try:
            return self._execute(req)
        except ApiError as e:
            # 404: there is no such expansion file or reference
            if e.status == 404:
                return None
            raise

    def upload_expansion_file(
        self, application_id: str, edit_id: str, version_code: int, type_: str, path: Path
    ) -> None:
        media = MediaFileUpload(str(path), mimetype=MIME_OCTET_STREAM, resumable=True)
        req = (
            self.service.edits()
            .expansionfiles()
            .upload(
                packageName=application_id,
                editId=edit_id,
                apkVersionCode=version_code,
                expansionFileType=type_,
                media_body=media,
            )
        )
        self._execute(req, upload=path.name)

    def reference_expansion_file(
        self, application_id: str, edit_id: str, version_code: int, type_: str, references_version: int
    ) -> None:
        req = (
            self.service.edits()
            .expansionfiles()
            .update(
                packageName=application_id,
                editId=edit_id,
                apkVersionCode=version_code,
                expansionFileType=type_,
                body={'referencesVersion': references_version},
            )
        )
        self._execute(req)

    def list_tracks(self, application_id: str, edit_id: str) -> list[dict]:
        res = self._execute(self.service.edits().tracks().list(packageName=application_id, editId=edit_id))
        return res.get('tracks') or []

    def update_track(self, application_id: str, edit_id: str, track: str, body: dict) -> dict:
        req = self.service.edits().tracks().update(packageName=application_id, editId=edit_id, track=track, body=body)
        return self._execute(req)


# ############################################################
# ###################### Edit sessions #######################
# ############################################################
class EditSessionManager:
    def __init__(self, client: PublisherClient):
        self.client = client

    def open(self, application_id: str) -> EditSession:
        edit_id = self.client.insert_edit(application_id)
        logger.debug('Opened edit %s for %s', edit_id, application_id)
        return EditSession(application_id, edit_id)

    def commit(self, session: EditSession) -> None:
        self._check_open(session)
        self.client.commit_edit(session.application_id, session.edit_id)
        session.committed = True

    def _check_open(self, session: EditSession) -> None:
        if session.committed:
            raise RuntimeError(f'Edit {session.edit_id} has already been committed')

    def existing_apks(self, session: EditSession) -> list[ExistingBinary]:
        self._check_open(session)
        return self.client.list_apks(session.application_id, session.edit_id)

    def existing_bundles(self, session: EditSession) -> list[ExistingBinary]:
        self._check_open(session)
        return self.client.list_bundles(session.application_id, session.edit_id)

    def existing_binaries(self, session: EditSession) -> list[ExistingBinary]:
        """All APKs and bundles visible in the session."""
        return self.existing_apks(session) + self.existing_bundles(session)

    def verify_applied(self, application_id: str, version_codes: list[int]) -> bool:
        """
        Opens a fresh session and checks that all `version_codes` exist on
        Google Play. Used after a commit that got no definitive answer, since
        Google Play sometimes applies a commit but responds with a timeout.
        """
        logger.info('Checking whether the changes were applied anyway...')
        check = self.open(application_id)
        present = {b.version_code for b in self.existing_binaries(check)}
        missing = [vc for vc in version_codes if vc not in present]
        if missing:
            logger.error('Version code(s) not found on Google Play: %s', ', '.join(map(str, missing)))
            return False
        return True
