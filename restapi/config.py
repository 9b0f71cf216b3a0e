"""Configuration for the REST client and its production transport.

``ClientConfig`` is a pydantic-settings model: any field left unset at
construction is read from a ``RESTAPI_``-prefixed environment variable
(``RESTAPI_TIMEOUT``, ``RESTAPI_USER_AGENT``, ``RESTAPI_FOLLOW_REDIRECTS``,
``RESTAPI_VERIFY_TLS``, ``RESTAPI_DEFAULT_HEADERS`` as JSON), falling back to
the defaults below.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Per-attempt timeout applied when a request does not set its own
DEFAULT_TIMEOUT = 2.0


class ClientConfig(BaseSettings):
    """Settings shared by every request a client makes.

    Attributes:
        timeout: Default per-attempt timeout in seconds.
        user_agent: Value for the User-Agent header, if any.
        default_headers: Headers sent with every request before the
            request's own headers.
        follow_redirects: Whether the production transport follows redirects.
        verify_tls: Whether TLS certificates are verified.
    """

    model_config = SettingsConfigDict(
        env_prefix="RESTAPI_", env_ignore_empty=True, extra="forbid", frozen=True
    )

    timeout: float = Field(DEFAULT_TIMEOUT, description="Per-attempt timeout in seconds")
    user_agent: str | None = Field(None, description="User-Agent header value")
    default_headers: dict[str, str] = Field(default_factory=dict)
    follow_redirects: bool = False
    verify_tls: bool = True

    @field_validator("timeout")
    @classmethod
    def _check_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be > 0")
        return value

    @classmethod
    def from_env(cls, prefix: str = "RESTAPI_") -> "ClientConfig":
        """Build a config from environment variables with a custom prefix.

        Args:
            prefix: Variable name prefix, e.g. ``"BILLING_"`` to read
                ``BILLING_TIMEOUT``.

        Returns:
            The validated configuration.

        Raises:
            pydantic.ValidationError: If a variable is present but malformed.
        """
        return cls(_env_prefix=prefix)

    def base_headers(self) -> dict[str, str]:
        """Return the headers every request starts from."""
        headers = dict(self.default_headers)
        if self.user_agent:
            headers["User-Agent"] = self.user_agent
        return headers
