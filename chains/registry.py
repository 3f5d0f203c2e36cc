"""
chains/registry.py - Provider construction from configuration.

Endpoint URLs may carry ${VAR} placeholders (API keys) that are resolved
from the environment; .env is loaded once on import.
"""

import os
import re

from dotenv import load_dotenv

from chains.base import ChainDataProvider
from chains.cosmos import CosmosProvider
from chains.providers import RPCProvider
from core.constants import ChainFamily, DEFAULT_REQUEST_TIMEOUT_S
from core.exceptions import ConfigError
from core.logging import get_logger

logger = get_logger(__name__)

# Load environment variables
load_dotenv()

_PLACEHOLDER_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

PROVIDER_CLASSES = {
    ChainFamily.EVM: RPCProvider,
    ChainFamily.COSMOS: CosmosProvider,
}


def resolve_endpoints(urls: list[str]) -> list[str]:
    """
    Resolve ${VAR} placeholders in endpoint URLs.

    Endpoints whose placeholders are not set in the environment are dropped.
    """
    resolved = []
    for url in urls:
        missing = [name for name in _PLACEHOLDER_RE.findall(url) if not os.getenv(name)]
        if missing:
            logger.debug(
                "Skipping endpoint with unresolved placeholders",
                extra={"context": {"url": url, "missing": missing}},
            )
            continue
        resolved.append(_PLACEHOLDER_RE.sub(lambda m: os.environ[m.group(1)], url))
    return resolved


def build_provider(
    family: ChainFamily,
    url: str,
    timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT_S,
) -> ChainDataProvider:
    """Create the provider for one endpoint of a chain family."""
    try:
        provider_cls = PROVIDER_CLASSES[ChainFamily(family)]
    except (KeyError, ValueError) as e:
        raise ConfigError(
            f"Unsupported chain family: {family}",
            details={"url": url},
        ) from e
    return provider_cls(url, timeout_seconds)


def build_candidates(
    family: ChainFamily,
    urls: list[str],
    timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT_S,
) -> list[ChainDataProvider]:
    """Create one provider per resolved endpoint."""
    return [build_provider(family, url, timeout_seconds) for url in resolve_endpoints(urls)]
