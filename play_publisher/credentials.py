import json
import sys
from pathlib import Path

from google.oauth2.service_account import Credentials

from .errors import AuthenticationError

ANDROIDPUBLISHER_SCOPE = 'https://www.googleapis.com/auth/androidpublisher'
CREDENTIALS_ENV = 'GOOGLE_PLAY_SERVICE_ACCOUNT_JSON'


def load_service_account_json(value: str) -> dict:
    """
    Accepts:
      - "-" to read JSON from stdin
      - a path to a JSON file
      - a raw JSON string
    """
    if not value:
        raise AuthenticationError(
            f'No credentials have been specified: pass --service-account-json or set {CREDENTIALS_ENV}'
        )

    try:
        if value == '-':
            return json.loads(sys.stdin.read())

        p = Path(value)
        if p.exists() and p.is_file():
            return json.loads(p.read_text())

        return json.loads(value)
    except json.JSONDecodeError as e:
        raise AuthenticationError(f'The service account JSON could not be parsed: {e}') from e


def service_account_credentials(info: dict) -> Credentials:
    try:
        return Credentials.from_service_account_info(info, scopes=[ANDROIDPUBLISHER_SCOPE])
    except (ValueError, KeyError) as e:
        raise AuthenticationError(
            'The Google Service Account credential has not been configured correctly.\n'
            f'\tUpdate the credential, ensuring that the required data have been entered, then try again ({e})'
        ) from e
