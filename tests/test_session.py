from unittest.mock import MagicMock

import httplib2
import pytest
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from play_publisher.errors import PERMISSION_HINT, AmbiguousCommitError, ApiError, AuthenticationError
from play_publisher.session import EditSessionManager, ExistingBinary, GooglePlayClient
from tests.fakes import FakePublisherClient, write


def http_error(status: int, content: bytes = b'') -> HttpError:
    return HttpError(httplib2.Response({'status': str(status)}), content)


# ############################################################
# ###################### Error mapping #######################
# ############################################################
def test_api_error_from_http_error():
    content = b'{"error": {"code": 403, "message": "Forbidden", "errors": [{"message": "APK is too old"}]}}'
    e = ApiError.from_http_error(http_error(403, content))

    assert e.status == 403
    assert e.kind == 'api'
    assert e.messages == ['APK is too old']
    assert e.report() == '- APK is too old'


def test_api_error_falls_back_to_top_level_message():
    e = ApiError.from_http_error(http_error(400, b'{"error": {"code": 400, "message": "Invalid track"}}'))
    assert e.messages == ['Invalid track']


def test_unauthorized_without_details_gets_permission_hint():
    e = ApiError.from_http_error(http_error(401, b'not json'))
    assert e.messages == [PERMISSION_HINT]


def test_api_error_without_messages():
    e = ApiError.from_http_error(http_error(500, b''))
    assert e.messages == []
    assert e.report().startswith('Unknown error: HTTP 500')


# ############################################################
# ################### Google Play client #####################
# ############################################################
def client() -> tuple[GooglePlayClient, MagicMock]:
    service = MagicMock()
    return GooglePlayClient(None, service=service), service


def test_insert_and_list():
    c, service = client()
    service.edits().insert().execute.return_value = {'id': 'edit-9'}
    service.edits().apks().list().execute.return_value = {
        'apks': [{'versionCode': 41, 'binary': {'sha1': 'ABCDEF'}}]
    }
    service.edits().bundles().list().execute.return_value = {}

    assert c.insert_edit('com.example.app') == 'edit-9'
    assert c.list_apks('com.example.app', 'edit-9') == [ExistingBinary(41, 'abcdef')]
    assert c.list_bundles('com.example.app', 'edit-9') == []


def test_upload_apk_runs_resumable_upload(tmp_path):
    c, service = client()
    request = service.edits().apks().upload.return_value
    request.next_chunk.side_effect = [(None, None), (None, {'versionCode': 42, 'binary': {'sha1': 'ff00'}})]

    result = c.upload_apk('com.example.app', 'edit-1', write(tmp_path / 'app.apk'))

    assert result == ExistingBinary(42, 'ff00')
    assert request.next_chunk.call_count == 2


def test_missing_expansion_file_is_none():
    c, service = client()
    service.edits().expansionfiles().get().execute.side_effect = http_error(404, b'{}')
    assert c.get_expansion_file('com.example.app', 'edit-1', 42, 'main') is None

    service.edits().expansionfiles().get().execute.side_effect = http_error(403, b'{}')
    with pytest.raises(ApiError):
        c.get_expansion_file('com.example.app', 'edit-1', 42, 'main')


def test_reference_expansion_file_body():
    c, service = client()
    c.reference_expansion_file('com.example.app', 'edit-1', 42, 'patch', 40)
    service.edits().expansionfiles().update.assert_called_with(
        packageName='com.example.app',
        editId='edit-1',
        apkVersionCode=42,
        expansionFileType='patch',
        body={'referencesVersion': 40},
    )


def test_commit_timeout_is_ambiguous():
    c, service = client()
    service.edits().commit().execute.side_effect = TimeoutError('timed out')
    with pytest.raises(AmbiguousCommitError):
        c.commit_edit('com.example.app', 'edit-1')

    service.edits().commit().execute.side_effect = http_error(400, b'{}')
    with pytest.raises(ApiError) as exc:
        c.commit_edit('com.example.app', 'edit-1')
    assert not isinstance(exc.value, AmbiguousCommitError)


def test_refresh_error_is_authentication_error():
    c, service = client()
    service.edits().insert().execute.side_effect = RefreshError('invalid_grant')
    with pytest.raises(AuthenticationError):
        c.insert_edit('com.example.app')


def test_network_error_is_api_error():
    c, service = client()
    service.edits().tracks().list().execute.side_effect = ConnectionResetError('reset')
    with pytest.raises(ApiError, match='Network error'):
        c.list_tracks('com.example.app', 'edit-1')


# ############################################################
# ###################### Edit sessions #######################
# ############################################################
def test_session_cannot_be_committed_twice():
    fake = FakePublisherClient()
    sessions = EditSessionManager(fake)
    session = sessions.open('com.example.app')

    sessions.commit(session)
    assert session.committed
    with pytest.raises(RuntimeError):
        sessions.commit(session)
    with pytest.raises(RuntimeError):
        sessions.existing_binaries(session)
    with pytest.raises(RuntimeError):
        sessions.existing_apks(session)
    with pytest.raises(RuntimeError):
        sessions.existing_bundles(session)
    assert fake.call_names == ['insert_edit', 'commit_edit']


def test_verify_applied_uses_fresh_session():
    fake = FakePublisherClient(apks=[ExistingBinary(41, 'a')], bundles=[ExistingBinary(42, 'b')])
    sessions = EditSessionManager(fake)

    assert sessions.verify_applied('com.example.app', [41, 42])
    assert not sessions.verify_applied('com.example.app', [42, 43])
    assert fake.call_names.count('insert_edit') == 2
    assert 'commit_edit' not in fake.call_names
