"""Gateway class validation.

A class is accepted when the secret it references holds all four
credential fields and the provider confirms the API token. Validation runs
on every reconcile, so a class flips back to rejected as soon as its secret
is broken.
"""

from __future__ import annotations

from tunnelgate.cluster.objects import ClassCredentials, GatewayClass
from tunnelgate.cluster.store import ClusterStore
from tunnelgate.core.exceptions import ClassValidationError
from tunnelgate.tunnels.api import ProviderFactory


async def verify_token(
    provider_factory: ProviderFactory, api_token: str, account_id: str = ""
) -> None:
    """Ask the provider whether an API token is valid.

    Raises:
        InvalidTokenError: The provider rejected the token.
        TokenValidationFailedError: The provider answered with another unexpected status.
        TransportError: The provider could not be reached in time.
    """
    async with provider_factory(api_token, account_id) as provider:
        await provider.verify_token()


class ClassValidator:
    def __init__(
        self,
        store: ClusterStore,
        provider_factory: ProviderFactory,
        default_namespace: str = "default",
    ) -> None:
        self.store = store
        self.provider_factory = provider_factory
        self.default_namespace = default_namespace

    async def load_credentials(self, gateway_class: GatewayClass) -> ClassCredentials:
        """Read the credential secret a class references.

        Raises:
            ClassValidationError: The class has no reference or the secret is missing.
            TransportError: The store could not be read.
        """
        ref = gateway_class.parameters_ref
        if ref is None:
            raise ClassValidationError(
                f"gatewayclass {gateway_class.name} has no parametersRef to a credential secret"
            )
        namespace = ref.namespace or self.default_namespace
        body = await self.store.get_secret(namespace, ref.name)
        if body is None:
            raise ClassValidationError(f"failed to retrieve secret {namespace}/{ref.name}")
        return ClassCredentials.from_secret(body)

    def validate_fields(self, credentials: ClassCredentials) -> None:
        credentials.validate()

    async def validate_token(self, credentials: ClassCredentials) -> None:
        await verify_token(self.provider_factory, credentials.api_token, credentials.account_id)

    async def load_valid_credentials(self, gateway_class: GatewayClass) -> ClassCredentials:
        """Load credentials and check every field is present, without calling the provider."""
        credentials = await self.load_credentials(gateway_class)
        self.validate_fields(credentials)
        return credentials

    async def validate(self, gateway_class: GatewayClass) -> ClassCredentials:
        """Run every check; the first failure is raised."""
        credentials = await self.load_valid_credentials(gateway_class)
        await self.validate_token(credentials)
        return credentials
