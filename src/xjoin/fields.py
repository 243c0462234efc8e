"""
Field selection for join output.

A field list is a comma or space separated list of names, each of which may
be a glob ("num_*"). "*" selects everything.
"""

import dataclasses
import re
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Mapping

from pydantic import BaseModel


def to_dict(obj: Any) -> Dict[str, Any]:
    """Plain dict view of a result record or aggregate object."""
    if isinstance(obj, BaseModel):
        return obj.model_dump()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    if isinstance(obj, Mapping):
        return dict(obj)
    return {"value": obj}


class FieldList:
    """Parsed field list."""

    def __init__(self, spec: str = "*"):
        self.patterns: List[str] = [p for p in re.split(r"[,\s]+", spec or "") if p]
        self.all = not self.patterns or "*" in self.patterns

    def wants(self, name: str) -> bool:
        if self.all:
            return True
        return any(fnmatchcase(name, pattern) for pattern in self.patterns)

    def project(self, obj: Any) -> Dict[str, Any]:
        """Selected fields of obj, in the object's own field order."""
        return {k: v for k, v in to_dict(obj).items() if self.wants(k)}
