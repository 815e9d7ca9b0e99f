"""Federated identity: verification of Firebase/Google ID tokens."""
import logging
from typing import Any, Dict, Optional

from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from config import get_settings
from errors import DownstreamError

logger = logging.getLogger(__name__)

AUTH_FAILED = "Failed to authenticate. Try with another account"


class FirebaseTokenVerifier:
    """Checks an ID token issued by Firebase Auth for the configured project."""

    def __init__(self, project_id: Optional[str]):
        self.project_id = project_id
        self._request = google_requests.Request()

    def verify(self, token: str) -> Dict[str, Any]:
        if not self.project_id:
            raise DownstreamError("Federated sign-in is not configured")
        try:
            claims = id_token.verify_firebase_token(token, self._request, audience=self.project_id)
        except (ValueError, google_exceptions.GoogleAuthError) as e:
            logger.warning(f"Federated token rejected: {e}")
            raise DownstreamError(AUTH_FAILED)
        if not claims or not claims.get("email"):
            raise DownstreamError(AUTH_FAILED)
        return claims


def get_identity_verifier() -> FirebaseTokenVerifier:
    return FirebaseTokenVerifier(get_settings().firebase_project_id)
