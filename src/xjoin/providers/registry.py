"""
Provider registry.

Maps provider names to constructors. Hosts pick a provider by name from
their configuration; nothing is loaded by class name at runtime.

Usage:
    provider = create_provider("fasta", {"email": ..., "program": ...})

    # or add your own
    register_provider("mine", MyProvider)
"""

from typing import Callable, Dict, List, Mapping

from xjoin.errors import ConfigurationError
from xjoin.providers.base import ExternalResultsProvider
from xjoin.providers.fasta import FastaProvider
from xjoin.providers.ontology import OntologyProvider
from xjoin.providers.phmmer import PhmmerProvider

ProviderFactory = Callable[[Mapping[str, str]], ExternalResultsProvider]

_PROVIDERS: Dict[str, ProviderFactory] = {
    "fasta": FastaProvider,
    "phmmer": PhmmerProvider,
    "ontology": OntologyProvider,
}


def register_provider(name: str, factory: ProviderFactory) -> None:
    _PROVIDERS[name] = factory


def available_providers() -> List[str]:
    return sorted(_PROVIDERS)


def create_provider(name: str, config: Mapping[str, str]) -> ExternalResultsProvider:
    """Build a provider. Raises ConfigurationError for unknown names or bad config."""
    factory = _PROVIDERS.get(name)
    if factory is None:
        raise ConfigurationError(
            f"Unknown provider {name!r}; known providers: {', '.join(available_providers())}"
        )
    return factory(config)
