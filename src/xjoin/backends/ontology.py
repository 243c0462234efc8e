"""
Ontology term lookup backends.

Two ways to find a term by IRI:
- OLSClient: the EBI Ontology Lookup Service REST API, one named ontology
- LocalOntology: a JSON term dump (file path or URL) loaded once at startup,
  with an optional properties file saying which dump keys hold the label,
  synonyms and definitions
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx
from dotenv import dotenv_values
from pydantic import BaseModel, ValidationError

from xjoin.errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)


class OntologyTerm(BaseModel):
    """A single ontology class."""
    iri: str
    label: Optional[str] = None
    description: Optional[List[str]] = None
    synonyms: Optional[List[str]] = None
    ontology_name: Optional[str] = None
    short_form: Optional[str] = None
    is_obsolete: bool = False


class OLSClient:
    """Client for the Ontology Lookup Service."""

    def __init__(self, base_url: str, ontology: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.ontology = ontology
        self.client = httpx.AsyncClient(timeout=timeout)

    async def find_term(self, iri: str) -> Optional[OntologyTerm]:
        """Look up a term by IRI. Returns None if OLS does not know it."""
        url = f"{self.base_url}/ontologies/{self.ontology}/terms"
        logger.debug(f"OLS lookup: {iri}")
        try:
            resp = await self.client.get(url, params={"iri": iri}, headers={"Accept": "application/json"})
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TransportError(f"OLS lookup of {iri} failed: {e}") from e

        terms = data.get("_embedded", {}).get("terms", [])
        if not terms:
            return None
        return self._parse_term(terms[0])

    def _parse_term(self, item: dict) -> OntologyTerm:
        try:
            return OntologyTerm.model_validate(item)
        except ValidationError as e:
            raise TransportError(f"Unreadable OLS term: {e}") from e

    async def close(self):
        await self.client.aclose()


# Keys in the local term dump, overridable from the properties file
DEFAULT_PROPERTIES = {
    "iri_property": "iri",
    "label_property": "label",
    "synonym_property": "synonyms",
    "definition_property": "description",
}


class LocalOntology:
    """Terms from a JSON dump, indexed by IRI."""

    def __init__(self, terms: Dict[str, OntologyTerm]):
        self.terms = terms

    @classmethod
    def load(cls, uri: str, config_file: Optional[str] = None) -> "LocalOntology":
        properties = dict(DEFAULT_PROPERTIES)
        if config_file:
            if not Path(config_file).is_file():
                raise ConfigurationError(f"No such ontology configuration file: {config_file}")
            properties.update({k: v for k, v in dotenv_values(config_file).items() if v})

        raw = _read_resource(uri)
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ConfigurationError(f"Ontology resource {uri} is not valid JSON: {e}") from e
        items = data.get("terms", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise ConfigurationError(f"Ontology resource {uri} holds no term list")

        terms = {}
        for item in items:
            if not isinstance(item, dict):
                raise ConfigurationError(f"Ontology resource {uri} has a term that is not an object: {item!r}")
            term = _term_from_dump(item, properties)
            if term is not None:
                terms[term.iri] = term
        logger.info(f"Loaded {len(terms)} ontology terms from {uri}")
        return cls(terms)

    async def find_term(self, iri: str) -> Optional[OntologyTerm]:
        return self.terms.get(iri)

    async def close(self):
        pass


def _as_list(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)]


def _term_from_dump(item: Dict[str, Any], properties: Dict[str, str]) -> Optional[OntologyTerm]:
    iri = item.get(properties["iri_property"])
    if not iri:
        return None
    return OntologyTerm(
        iri=iri,
        label=item.get(properties["label_property"]),
        description=_as_list(item.get(properties["definition_property"])),
        synonyms=_as_list(item.get(properties["synonym_property"])),
        ontology_name=item.get("ontology_name"),
        short_form=item.get("short_form"),
        is_obsolete=bool(item.get("is_obsolete", False)),
    )


def _read_resource(uri: str) -> str:
    """Read a local path, file:// URI or http(s) URL."""
    parsed = urlparse(uri)
    if parsed.scheme in ("http", "https"):
        try:
            resp = httpx.get(uri, timeout=60.0, follow_redirects=True)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise ConfigurationError(f"Cannot load ontology resource {uri}: {e}") from e
        return resp.text

    path = Path(parsed.path if parsed.scheme == "file" else uri)
    if not path.is_file():
        raise ConfigurationError(f"No such ontology resource: {uri}")
    return path.read_text(encoding="utf-8")
