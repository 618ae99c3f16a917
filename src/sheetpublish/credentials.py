"""Credentials management for Google Sheets API access.

Supports two authentication modes:
1. Service account file - credentials from a JSON key file
2. Application default credentials - whatever google-auth finds in the
   environment (gcloud login, workload identity, metadata server)

Access tokens are cached in the OS keyring between runs.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import timezone
from pathlib import Path
from typing import Any

import google.auth
import keyring
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from loguru import logger

SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]

# Keyring service name for storing tokens
KEYRING_SERVICE = "sheetpublish"
KEYRING_USERNAME = "token"


@dataclass
class Token:
    """Access token for the Google Sheets API.

    Attributes:
        access_token: The OAuth2 access token for API calls.
        principal: Service account email or other identity of the token.
        expires_at: Unix timestamp when the token expires.
    """

    access_token: str
    principal: str
    expires_at: float

    def is_valid(self, buffer_seconds: int = 60) -> bool:
        """Check if token is still valid with a safety buffer."""
        return time.time() < self.expires_at - buffer_seconds

    def expires_in_seconds(self) -> int:
        """Return seconds until token expires."""
        return max(0, int(self.expires_at - time.time()))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "access_token": self.access_token,
            "principal": self.principal,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Token:
        """Create Token from dictionary."""
        return cls(
            access_token=data["access_token"],
            principal=data.get("principal", ""),
            expires_at=data["expires_at"],
        )


class CredentialsManager:
    """Obtains access tokens for reading spreadsheets.

    Args:
        service_account_path: Path to a service account JSON file. When not
            given, application default credentials are used.

    Example:
        manager = CredentialsManager(service_account_path="/path/to/sa.json")
        token = manager.get_token()
    """

    def __init__(self, service_account_path: str | Path | None = None) -> None:
        self._sa_path = Path(service_account_path) if service_account_path else None

    @property
    def auth_mode(self) -> str:
        """Return the active authentication mode."""
        return "service_account" if self._sa_path else "application_default"

    def get_token(self, force_refresh: bool = False) -> Token:
        """Get a valid access token, refreshing credentials if necessary.

        Raises:
            FileNotFoundError: If the service account file does not exist.
            google.auth.exceptions.GoogleAuthError: If credentials cannot be
                found or refreshed.
        """
        if not force_refresh:
            cached = self._load_cached_token()
            if cached:
                logger.debug(
                    "Using cached token (expires in {} seconds)",
                    cached.expires_in_seconds(),
                )
                return cached

        credentials = self._load_credentials()
        credentials.refresh(Request())

        token = Token(
            access_token=credentials.token,
            principal=getattr(credentials, "service_account_email", "") or "",
            expires_at=_expiry_timestamp(credentials.expiry),
        )
        self._save_token(token)
        logger.info(
            "Authenticated as {} (token expires in {} seconds)",
            token.principal or self.auth_mode,
            token.expires_in_seconds(),
        )
        return token

    def _load_credentials(self) -> Any:
        if self._sa_path:
            if not self._sa_path.exists():
                raise FileNotFoundError(
                    f"Service account file not found: {self._sa_path}"
                )
            logger.debug("Loading credentials from {}", self._sa_path)
            return service_account.Credentials.from_service_account_file(
                str(self._sa_path), scopes=SCOPES
            )
        credentials, _ = google.auth.default(scopes=SCOPES)
        return credentials

    def _load_cached_token(self) -> Token | None:
        """Load cached token from OS keyring if it exists and is still valid."""
        try:
            token_json = keyring.get_password(KEYRING_SERVICE, self._keyring_username)
            if not token_json:
                return None
            token = Token.from_dict(json.loads(token_json))
        except (json.JSONDecodeError, KeyError) as e:
            logger.warning("Invalid cached token: {}", e)
            return None
        if not token.is_valid():
            logger.debug("Cached token expired, need to re-authenticate")
            return None
        return token

    def _save_token(self, token: Token) -> None:
        """Save token securely to OS keyring."""
        keyring.set_password(
            KEYRING_SERVICE, self._keyring_username, json.dumps(token.to_dict())
        )

    @property
    def _keyring_username(self) -> str:
        if self._sa_path:
            return f"{KEYRING_USERNAME}:{self._sa_path.resolve()}"
        return KEYRING_USERNAME


def _expiry_timestamp(expiry: Any) -> float:
    """Convert google-auth's naive UTC expiry to a Unix timestamp."""
    if expiry is None:
        return 0
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return float(expiry.timestamp())
