"""
Ontology provider: direct term lookup, no job cycle.

Configured in one of two modes:
- remote: olsBaseURL + olsOntology, terms fetched from OLS per query
- local: ontologyURI (+ optional configurationFile), terms loaded at startup

Anything else fails construction.
"""

import logging
from typing import Dict, List, Mapping

from xjoin.backends.ontology import LocalOntology, OLSClient
from xjoin.errors import ConfigurationError
from xjoin.models import ExternalResultSet, Single
from xjoin.providers.base import ExternalResultsProvider, require_param

logger = logging.getLogger(__name__)

# initialisation parameters
OLS_BASE_URL = "olsBaseURL"
OLS_ONTOLOGY_NAME = "olsOntology"
ONTOLOGY_URI_PARAM = "ontologyURI"
CONFIG_FILE_PARAM = "configurationFile"

# request parameters
ONTOLOGY_IRI = "iri"


def split_iris(value: str) -> List[str]:
    """Comma separated IRIs, blanks and repeats dropped, order kept."""
    iris: List[str] = []
    for iri in (part.strip() for part in value.split(",")):
        if iri and iri not in iris:
            iris.append(iri)
    return iris


class OntologyProvider(ExternalResultsProvider):
    """Direct-lookup provider for ontology terms."""

    def initialize(self, config: Mapping[str, str]) -> None:
        logger.info("initialising OntologyProvider")
        base_url = config.get(OLS_BASE_URL)
        ontology = config.get(OLS_ONTOLOGY_NAME)
        uri = config.get(ONTOLOGY_URI_PARAM)

        if base_url or ontology:
            if not (base_url and ontology):
                raise ConfigurationError(f"OLS lookups need both {OLS_BASE_URL} and {OLS_ONTOLOGY_NAME}")
            logger.info(f"Using OLS at {base_url}, ontology={ontology}")
            self.helper = OLSClient(base_url, ontology)
            self.remote = True
        elif uri:
            self.helper = LocalOntology.load(uri, config.get(CONFIG_FILE_PARAM))
            self.remote = False
        else:
            raise ConfigurationError(
                f"Ontology provider needs {ONTOLOGY_URI_PARAM}, or {OLS_BASE_URL} and {OLS_ONTOLOGY_NAME}"
            )

    async def compute_results(self, params: Mapping[str, str]) -> ExternalResultSet:
        iris = split_iris(require_param(params, ONTOLOGY_IRI))

        # Sequential lookups to stay friendly with OLS rate limits
        terms: Dict[str, Single] = {}
        for iri in iris:
            term = await self.helper.find_term(iri)
            if term is not None:
                terms[iri] = Single(term)
        logger.info(f"Found {len(terms)} of {len(iris)} ontology terms")

        return ExternalResultSet(terms, {"num_terms": len(terms)})

    async def close(self):
        await self.helper.close()
