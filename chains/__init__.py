"""
chains/ - Blockchain interaction layer.

Modules:
- base: ChainDataProvider protocol, HTTP plumbing, endpoint stats
- providers: EVM JSON-RPC provider
- cosmos: Cosmos SDK REST provider
- registry: Provider construction from configuration
- selector: Provider selection and staleness detection
"""

from chains.base import ChainDataProvider, HTTPProvider, RPCStats
from chains.cosmos import CosmosProvider
from chains.providers import RPCProvider, RPCResponse
from chains.registry import build_candidates, build_provider, resolve_endpoints
from chains.selector import ProviderSelector, Selection

__all__ = [
    # Interface
    "ChainDataProvider",
    "HTTPProvider",
    "RPCStats",
    # Providers
    "CosmosProvider",
    "RPCProvider",
    "RPCResponse",
    # Construction
    "build_candidates",
    "build_provider",
    "resolve_endpoints",
    # Selection
    "ProviderSelector",
    "Selection",
]
