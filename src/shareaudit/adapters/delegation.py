"""
Domain-wide delegation: act as any account in the organization.

An organization registers one service account. With domain-wide delegation
granted in the Workspace admin console, that service account can mint
tokens for any member account (the "subject"), which is how integrated jobs
scan every account without each user signing in.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import google.auth.transport.requests
import httpx
from google.auth.exceptions import RefreshError, TransportError
from google.oauth2 import service_account

from shareaudit.adapters.drive import DriveClient
from shareaudit.adapters.google_client import GoogleAPIClient, RateLimiterConfig
from shareaudit.config import DriveSettings, get_settings
from shareaudit.exceptions import DelegationError, DriveAPIError

logger = logging.getLogger(__name__)

DELEGATION_SCOPES = [
    "https://www.googleapis.com/auth/drive.readonly",
    "https://www.googleapis.com/auth/admin.directory.user.readonly",
]

TOKEN_URI = "https://oauth2.googleapis.com/token"

USERS_PAGE_SIZE = 500

# Substring of the provider error -> (reason, message shown to admins)
_ERROR_TRANSLATIONS = [
    (
        "invalid_grant",
        "invalid_grant",
        "Service account authentication failed. Check that the private key is correct.",
    ),
    (
        "Not Authorized",
        "delegation_not_authorized",
        "Domain-wide delegation is not configured. Grant the required scopes "
        "to the service account in the Google Workspace admin console.",
    ),
    (
        "unauthorized_client",
        "delegation_not_authorized",
        "Domain-wide delegation is not configured. Grant the required scopes "
        "to the service account in the Google Workspace admin console.",
    ),
    (
        "invalid_client",
        "invalid_client",
        "The service account email address is not valid.",
    ),
    (
        "403",
        "access_denied",
        "Access was denied. Enable domain-wide delegation in the admin console.",
    ),
]


INVALID_KEY_MESSAGE = (
    "The service account private key could not be read. "
    "Upload the JSON key file again."
)


def translate_delegation_error(message: str) -> tuple[str, str]:
    """Map a raw provider error to (reason, human-readable message)."""
    for needle, reason, translated in _ERROR_TRANSLATIONS:
        if needle in message:
            return reason, translated
    return "unknown", message


@dataclass(frozen=True)
class ServiceAccountConfig:
    """Credentials of the organization's delegated service account."""

    client_email: str
    private_key: str
    client_id: Optional[str] = None

    def to_info(self) -> dict[str, Any]:
        """Service-account info dict as accepted by google-auth."""
        return {
            "type": "service_account",
            "client_email": self.client_email,
            "private_key": self.private_key,
            "client_id": self.client_id or "",
            "token_uri": TOKEN_URI,
        }


def parse_service_account_json(raw: str) -> Optional[ServiceAccountConfig]:
    """
    Parse a downloaded service-account key file.

    Returns None when the text is not JSON or lacks client_email/private_key.
    """
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(parsed, dict):
        return None
    if not parsed.get("client_email") or not parsed.get("private_key"):
        return None
    return ServiceAccountConfig(
        client_email=parsed["client_email"],
        private_key=parsed["private_key"],
        client_id=parsed.get("client_id") or None,
    )


@dataclass(frozen=True)
class DomainUser:
    """An active account in the organization's directory."""

    email: str
    display_name: str
    is_admin: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"email": self.email, "name": self.display_name, "is_admin": self.is_admin}


@dataclass
class VerificationResult:
    """Outcome of checking a delegation configuration."""

    success: bool
    error: Optional[str] = None
    reason: Optional[str] = None
    user_count: Optional[int] = None


class DelegatedCredentials:
    """
    TokenSource backed by service-account credentials acting as one subject.

    google-auth refreshes synchronously, so refreshes run in a worker thread.
    """

    def __init__(self, config: ServiceAccountConfig, subject: str):
        self.subject = subject
        try:
            credentials = service_account.Credentials.from_service_account_info(
                config.to_info(),
                scopes=DELEGATION_SCOPES,
            )
        except ValueError as e:
            raise DelegationError(
                INVALID_KEY_MESSAGE,
                reason="invalid_key",
                subject=subject,
                context="loading service account key",
            ) from e
        self._credentials = credentials.with_subject(subject)
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        async with self._lock:
            if not self._credentials.valid:
                logger.debug("Refreshing delegated token for %s", self.subject)
                try:
                    await asyncio.to_thread(
                        self._credentials.refresh,
                        google.auth.transport.requests.Request(),
                    )
                except RefreshError as e:
                    reason, message = translate_delegation_error(str(e))
                    raise DelegationError(
                        message,
                        reason=reason,
                        subject=self.subject,
                        context="refreshing delegated credentials",
                    ) from e
                except TransportError as e:
                    raise DriveAPIError(
                        "Failed to reach the Google token endpoint",
                        endpoint=TOKEN_URI,
                        context=f"refreshing delegated credentials for {self.subject}",
                    ) from e
            return self._credentials.token


class DirectoryUsersClient(GoogleAPIClient):
    """Admin SDK Directory API client (user listing only)."""

    async def list_users(
        self,
        domain: str,
        max_results: int = USERS_PAGE_SIZE,
        active_only: bool = True,
        limit: Optional[int] = None,
    ) -> list[DomainUser]:
        """List directory users of a domain, following every page."""
        users: list[DomainUser] = []
        page_token: Optional[str] = None
        while True:
            params: dict[str, Any] = {
                "domain": domain,
                "maxResults": max_results,
                "projection": "basic",
            }
            if active_only:
                params["query"] = "isSuspended=false"
            if page_token:
                params["pageToken"] = page_token

            data = await self.get("/users", params=params)
            for user in data.get("users", []):
                email = user.get("primaryEmail")
                if not email:
                    continue
                users.append(DomainUser(
                    email=email,
                    display_name=(user.get("name") or {}).get("fullName") or email,
                    is_admin=bool(user.get("isAdmin", False)),
                ))
                if limit is not None and len(users) >= limit:
                    return users

            page_token = data.get("nextPageToken")
            if not page_token:
                return users


class DelegatedClientFactory:
    """
    Builds provider clients that act as specific organization members.

    Usage:
        factory = DelegatedClientFactory(config)
        async with factory.for_subject("alice@example.com") as drive:
            ...
    """

    def __init__(
        self,
        config: ServiceAccountConfig,
        settings: Optional[DriveSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._settings = settings or get_settings().drive
        self._transport = transport

    def credentials_for(self, subject: str) -> DelegatedCredentials:
        return DelegatedCredentials(self.config, subject)

    def for_subject(self, email: str) -> DriveClient:
        """Drive client acting as the given account."""
        return DriveClient.from_settings(
            self.credentials_for(email),
            settings=self._settings,
            transport=self._transport,
        )

    def directory_client(self, admin_email: str) -> DirectoryUsersClient:
        """Directory client acting as an administrator."""
        return DirectoryUsersClient(
            self._settings.directory_api_base,
            self.credentials_for(admin_email),
            rate_config=RateLimiterConfig(
                requests_per_second=self._settings.requests_per_second,
                burst_size=self._settings.burst_size,
            ),
            pool_size=self._settings.pool_size,
            timeout=self._settings.timeout,
            connect_timeout=self._settings.connect_timeout,
            transport=self._transport,
        )

    async def list_domain_users(self, admin_email: str, domain: str) -> list[DomainUser]:
        """All active accounts in the domain, listed as the given admin."""
        async with self.directory_client(admin_email) as directory:
            users = await directory.list_users(domain)
        logger.info("Listed %d active users in %s", len(users), domain)
        return users

    async def verify(self, admin_email: str) -> VerificationResult:
        """
        Check that delegation works for the given admin account.

        Lists one directory user and reads the admin's Drive profile. Errors
        are translated into messages an administrator can act on, never
        raised.
        """
        domain = admin_email.rsplit("@", 1)[-1]
        try:
            async with self.directory_client(admin_email) as directory:
                users = await directory.list_users(domain, max_results=1, active_only=False, limit=1)
            async with self.for_subject(admin_email) as drive:
                await drive.get("/about", params={"fields": "user"})
        except DelegationError as e:
            logger.warning("Delegation verification failed for %s: %s", admin_email, e.reason)
            return VerificationResult(success=False, error=e.message, reason=e.reason)
        except DriveAPIError as e:
            raw = f"{e.status_code} {e.message}" if e.status_code else e.message
            reason, message = translate_delegation_error(raw)
            logger.warning("Delegation verification failed for %s: %s", admin_email, raw)
            return VerificationResult(success=False, error=message, reason=reason)

        return VerificationResult(success=True, user_count=len(users) or None)
