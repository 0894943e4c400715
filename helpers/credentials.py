"""Service-account credential helper for the Google Calendar API.

Loads a single service-account key, either from a base64 blob in
``GOOGLE_SERVICE_ACCOUNT_KEY_BASE64`` or from the JSON file named by
``GOOGLE_SERVICE_ACCOUNT_KEY_PATH``, and hands out
``google.oauth2.service_account.Credentials``.

The parsed credential is cached after the first successful load. Callers that
hit an auth failure should go through ``scoped()`` (or call ``invalidate()``)
so the next acquisition re-reads the key material. Setting
``cache_credentials=False`` re-reads the key on every ``acquire()``.

Security note: store key files with restrictive filesystem permissions (600)
and never commit them to source control.

Usage example:

from helpers.credentials import ServiceAccountCredentialProvider
provider = ServiceAccountCredentialProvider(settings)
with provider.scoped() as creds:
    service = build("calendar", "v3", credentials=creds)
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, Optional

from google.auth.exceptions import RefreshError
from google.oauth2 import service_account

from connectors.errors import CredentialError

logger = logging.getLogger(__name__)

CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]


class ServiceAccountCredentialProvider:
    def __init__(self, settings: Any, scopes: Iterable[str] = CALENDAR_SCOPES):
        self.key_base64: Optional[str] = settings.service_account_key_base64
        self.key_path: str = os.path.expanduser(settings.service_account_key_path)
        self.cache_enabled: bool = settings.cache_credentials
        self.scopes = list(scopes)
        self._lock = threading.Lock()
        self._cached: Optional[service_account.Credentials] = None

    def has_service_account(self) -> bool:
        return bool(self.key_base64) or os.path.exists(self.key_path)

    def _read_key_material(self) -> Dict[str, Any]:
        if self.key_base64:
            try:
                raw = base64.b64decode(self.key_base64, validate=True).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise CredentialError(
                    "Service account key blob is not valid base64", details=str(e)
                ) from e
            source = "GOOGLE_SERVICE_ACCOUNT_KEY_BASE64"
        else:
            try:
                with open(self.key_path, "r") as fh:
                    raw = fh.read()
            except OSError as e:
                raise CredentialError(
                    "Could not read service account key file", details=str(e)
                ) from e
            source = self.key_path

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CredentialError(
                "Service account key is not valid JSON", details=f"{source}: {e}"
            ) from e
        if not isinstance(data, dict):
            raise CredentialError("Service account key must be a JSON object", details=source)
        # Some exported keys nest the fields under "web"
        if "client_email" not in data and isinstance(data.get("web"), dict):
            data = data["web"]
        logger.debug("Loaded service account key material from %s", source)
        return data

    def _load(self) -> service_account.Credentials:
        info = self._read_key_material()
        try:
            creds = service_account.Credentials.from_service_account_info(
                info, scopes=self.scopes
            )
        except (ValueError, KeyError, TypeError) as e:
            raise CredentialError("Malformed service account key", details=str(e)) from e
        logger.info(
            "Initialized service account credentials for %s",
            info.get("client_email", "<unknown>"),
        )
        return creds

    def acquire(self) -> service_account.Credentials:
        """Return the service credential, loading it on first use.

        Raises CredentialError when the key is missing, unreadable or malformed.
        """
        if not self.cache_enabled:
            return self._load()
        with self._lock:
            if self._cached is None:
                self._cached = self._load()
            return self._cached

    def invalidate(self) -> None:
        with self._lock:
            if self._cached is not None:
                logger.info("Dropping cached service account credentials")
            self._cached = None

    def refresh(self) -> service_account.Credentials:
        self.invalidate()
        return self.acquire()

    @contextmanager
    def scoped(self) -> Iterator[service_account.Credentials]:
        creds = self.acquire()
        try:
            yield creds
        except (RefreshError, CredentialError):
            self.invalidate()
            raise
