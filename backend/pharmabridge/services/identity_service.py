"""
Delegated identity verification for pharmacy Google sign-in.

The ID token is checked by Google's token-info endpoint, which rejects bad
signatures and expired tokens; audience, issuer and email verification are
checked here. Tests inject a stub verifier through api.deps.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import requests

from pharmabridge.core.config import settings
from pharmabridge.core.exceptions import AuthenticationFailure, UpstreamFailure, ValidationError

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


@dataclass(frozen=True)
class VerifiedIdentity:
    email: str
    name: Optional[str] = None


class GoogleIdentityVerifier:
    def __init__(self, client_id: Optional[str] = None, tokeninfo_url: Optional[str] = None,
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.client_id = client_id if client_id is not None else settings.GOOGLE_CLIENT_ID
        self.tokeninfo_url = tokeninfo_url or settings.GOOGLE_TOKENINFO_URL
        self.timeout = timeout or settings.IDENTITY_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def verify(self, credential: str) -> VerifiedIdentity:
        if not credential:
            raise ValidationError("Google credential is required")
        if not self.client_id:
            raise UpstreamFailure(reason="GOOGLE_CLIENT_ID is not configured")

        try:
            resp = self.session.get(self.tokeninfo_url, params={"id_token": credential}, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamFailure(reason=f"token-info request failed: {e}", original=e)

        if resp.status_code != 200:
            raise AuthenticationFailure("Invalid Google credential", reason=f"token-info returned {resp.status_code}")

        payload = resp.json()
        if payload.get("aud") != self.client_id:
            raise AuthenticationFailure("Invalid Google credential", reason="audience mismatch")
        if payload.get("iss") not in GOOGLE_ISSUERS:
            raise AuthenticationFailure("Invalid Google credential", reason=f"unexpected issuer {payload.get('iss')}")
        if str(payload.get("email_verified", "")).lower() != "true" or not payload.get("email"):
            raise AuthenticationFailure("Google account email is not verified", reason="email_verified false")

        logger.info(f"Verified Google identity for {payload['email']}")
        return VerifiedIdentity(email=payload["email"], name=payload.get("name"))
