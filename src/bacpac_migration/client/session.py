"""Azure sign-in and subscription context.

The session is an explicit value handed to every client that talks to Azure
Resource Manager. Nothing about the signed-in identity is kept in globals.
"""

import asyncio
import time
from dataclasses import dataclass, field

from azure.core.credentials import AccessToken, TokenCredential
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import (
    CredentialUnavailableError,
    DefaultAzureCredential,
    InteractiveBrowserCredential,
)

from bacpac_migration.client.exceptions import AuthenticationError
from bacpac_migration.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MANAGEMENT_URL = "https://management.azure.com"

# Refresh tokens when less than 5 minutes until expiry
TOKEN_REFRESH_BUFFER_SECS = 300


@dataclass
class AzureSession:
    """Signed-in identity bound to one subscription.

    Attributes:
        credential: azure-identity credential used to acquire tokens
        subscription_id: Subscription every ARM call is scoped to
        management_url: Azure Resource Manager endpoint
        tenant_id: Tenant tokens are requested for (None uses the credential default)
    """

    credential: TokenCredential
    subscription_id: str
    management_url: str = DEFAULT_MANAGEMENT_URL
    tenant_id: str | None = None
    _token: AccessToken | None = field(default=None, init=False, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    @property
    def scope(self) -> str:
        return f"{self.management_url.rstrip('/')}/.default"

    async def bearer_token(self) -> str:
        """Return a cached ARM access token, refreshing it shortly before expiry.

        Raises:
            AuthenticationError: If no token can be acquired
        """
        async with self._lock:
            if self._token is None or self._token.expires_on - TOKEN_REFRESH_BUFFER_SECS <= time.time():
                options = {"tenant_id": self.tenant_id} if self.tenant_id else {}
                try:
                    # azure-identity credentials block on network I/O
                    self._token = await asyncio.to_thread(
                        self.credential.get_token, self.scope, **options
                    )
                except (ClientAuthenticationError, CredentialUnavailableError) as e:
                    raise AuthenticationError(f"Failed to acquire Azure token: {e}") from e
                logger.debug("arm_token_acquired", expires_on=self._token.expires_on)
            return self._token.token


class AzureSessionProvider:
    """Creates the credential and binds it to a subscription."""

    def __init__(
        self,
        tenant_id: str | None = None,
        interactive: bool = False,
        management_url: str = DEFAULT_MANAGEMENT_URL,
    ):
        """Initialize the provider.

        Args:
            tenant_id: Tenant to sign in to; None uses the credential's default
            interactive: Sign in through the browser instead of the default chain
            management_url: Azure Resource Manager endpoint
        """
        self.tenant_id = tenant_id
        self.interactive = interactive
        self.management_url = management_url

    def login(self) -> TokenCredential:
        """Create the credential used for the run."""
        if self.interactive:
            logger.info("azure_login", method="interactive_browser", tenant_id=self.tenant_id)
            return InteractiveBrowserCredential(tenant_id=self.tenant_id)

        logger.info("azure_login", method="default_credential_chain", tenant_id=self.tenant_id)
        return DefaultAzureCredential(
            exclude_interactive_browser_credential=True,
            **({"additionally_allowed_tenants": [self.tenant_id]} if self.tenant_id else {}),
        )

    async def select_context(self, subscription_id: str) -> AzureSession:
        """Sign in and bind the session to a subscription.

        A token is acquired immediately so sign-in problems surface before any
        work starts.

        Raises:
            AuthenticationError: If sign-in fails
        """
        session = AzureSession(
            credential=self.login(),
            subscription_id=subscription_id,
            management_url=self.management_url,
            tenant_id=self.tenant_id,
        )
        await session.bearer_token()
        logger.info("azure_context_selected", subscription_id=subscription_id)
        return session
