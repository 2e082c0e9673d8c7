"""Bearer-token lifecycle for authenticated crawls.

Sites behind an identity-aware proxy (App Service "Easy Auth" and friends)
answer anonymous requests with a 401 or a redirect to the login page.  The
crawler therefore presents an OAuth2 access token scoped to
``<audience>/.default`` on every request.

Tokens come from ``azure-identity``: a user-assigned
``ManagedIdentityCredential`` when ``MANAGED_CLIENT_ID`` is set, otherwise
``DefaultAzureCredential`` (environment, workload identity, managed
identity, Azure CLI, ...).  :class:`AzureTokenProvider` adapts either one to
the small ``get_token(scope)`` protocol the session uses, so tests can pass
any object with that method.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError, ClientAuthenticationError
from azure.identity import DefaultAzureCredential, ManagedIdentityCredential

from siteingest.config import Settings
from siteingest.errors import AuthProviderError

logger = logging.getLogger(__name__)

# Tokens are refreshed this long before they actually expire.
REFRESH_MARGIN_SECONDS = 5 * 60


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_on: float  # epoch seconds


class CredentialProvider(Protocol):
    def get_token(self, scope: str) -> AccessToken: ...


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------

class AzureTokenProvider:
    """Wraps an azure-identity credential.

    ``ClientAuthenticationError`` (which includes
    ``CredentialUnavailableError``) means no configured identity can ever
    issue the token, so it is reported as permanent.  Any other
    ``AzureError`` is a network or service hiccup and is transient.
    """

    def __init__(self, credential: TokenCredential) -> None:
        self.credential = credential

    def get_token(self, scope: str) -> AccessToken:
        try:
            token = self.credential.get_token(scope)
        except ClientAuthenticationError as exc:
            raise AuthProviderError(f"Authentication failed: {exc}", permanent=True) from exc
        except AzureError as exc:
            raise AuthProviderError(f"Token request failed: {exc}") from exc
        return AccessToken(token=token.token, expires_on=float(token.expires_on))


def credential_from_settings(settings: Settings) -> AzureTokenProvider:
    """Pick the credential: user-assigned managed identity if configured,
    else the default credential chain."""
    if settings.managed_client_id:
        logger.info("Using managed identity %s.", settings.managed_client_id)
        return AzureTokenProvider(ManagedIdentityCredential(client_id=settings.managed_client_id))
    logger.info("Using DefaultAzureCredential.")
    return AzureTokenProvider(DefaultAzureCredential())


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    EXPIRING = "expiring"


class AuthSession:
    """Owns the cached bearer token shared by every fetch of a crawl.

    Authentication is optional: without an *audience* every operation is a
    no-op and :meth:`authorization_header` returns ``None``.

    Token refreshes are single-flight.  Concurrent callers that find the
    token stale queue on one lock; the first performs the request and the
    rest reuse its result.
    """

    def __init__(
        self,
        credential: Optional[CredentialProvider],
        audience: str = "",
        clock: Callable[[], float] = time.time,
        refresh_margin: float = REFRESH_MARGIN_SECONDS,
    ) -> None:
        self._credential = credential
        self.audience = audience.strip()
        self._clock = clock
        self._refresh_margin = refresh_margin
        self._token: Optional[AccessToken] = None
        self._lock = threading.Lock()
        self._disabled = False
        self.token_requests = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def enabled(self) -> bool:
        """``True`` when an audience is configured and auth was not disabled."""
        return bool(self.audience) and self._credential is not None and not self._disabled

    @property
    def scope(self) -> str:
        return self.audience.rstrip("/") + "/.default"

    @property
    def token(self) -> Optional[AccessToken]:
        return self._token

    @property
    def state(self) -> AuthState:
        token = self._token
        if token is None:
            return AuthState.UNAUTHENTICATED
        if not self._is_fresh(token):
            return AuthState.EXPIRING
        return AuthState.AUTHENTICATED

    def authorization_header(self) -> Optional[str]:
        """Return ``"Bearer <token>"`` for the current token, if any."""
        token = self._token
        if token is None:
            return None
        return f"Bearer {token.token}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def _is_fresh(self, token: AccessToken) -> bool:
        return self._clock() < token.expires_on - self._refresh_margin

    def ensure_authenticated(self) -> None:
        """Make sure a token valid for more than the refresh margin is cached.

        Raises:
            AuthProviderError: For transient provider failures.  Permanent
                failures are logged and disable authentication instead.
        """
        if not self.enabled:
            return

        token = self._token
        if token is not None and self._is_fresh(token):
            return

        with self._lock:
            # Another caller may have refreshed while we waited on the lock.
            token = self._token
            if not self.enabled or (token is not None and self._is_fresh(token)):
                return
            self._acquire()

    def force_refresh(self, stale_token: Optional[AccessToken] = None) -> None:
        """Discard the cached token and acquire a new one.

        Args:
            stale_token: The token the caller saw rejected.  When another
                caller has already replaced it, no second request is made.
        """
        if not self.enabled:
            return

        with self._lock:
            if stale_token is not None and self._token is not stale_token:
                logger.debug("Token already refreshed by a concurrent fetch.")
                return
            logger.info("Forcing token refresh.")
            self._token = None
            if not self.enabled:
                return
            self._acquire()

    def _acquire(self) -> None:
        """Request a new token.  Caller must hold ``self._lock``."""
        assert self._credential is not None
        scope = self.scope
        logger.info("Requesting access token with scope %r.", scope)
        self.token_requests += 1
        try:
            token = self._credential.get_token(scope)
        except AuthProviderError as exc:
            if exc.permanent:
                self._disabled = True
                self._token = None
                logger.error(
                    "Credential provider failed permanently; continuing "
                    "without authentication: %s",
                    exc,
                )
                return
            raise

        self._token = token
        logger.info(
            "Acquired access token (expires %s).",
            time.strftime("%Y-%m-%d %H:%M:%SZ", time.gmtime(token.expires_on)),
        )
