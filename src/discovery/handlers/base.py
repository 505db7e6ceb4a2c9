from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping

from eth_abi.exceptions import DecodingError, EncodingError

from discovery.core.errors import ConfigurationError, DiscoveryError, HandlerError
from discovery.core.models import FieldResult
from discovery.provider.caching_provider import CachingProvider

logger = logging.getLogger(__name__)

_TEMPLATE_RE = re.compile(r"^\{\{\s*([A-Za-z0-9_$]+)\s*\}\}$")


class Handler(ABC):
    """
    Resolves one named field of a contract.

    Handlers may read sibling fields through ``"{{ name }}"`` templates in
    their definition; those names become ``dependencies`` and are guaranteed
    to be resolved before ``execute`` runs.
    """

    type: str = ""
    required: tuple = ()

    def __init__(self, field: str, definition: Dict[str, Any]) -> None:
        missing = [k for k in self.required if k not in definition]
        if missing:
            raise ConfigurationError(f"{field}: '{self.type}' handler requires {', '.join(missing)}")
        self.field = field
        self.definition = definition
        self.dependencies: List[str] = find_dependencies(definition)

    def int_param(self, name: str, default: int) -> int:
        value = self.definition.get(name, default)
        if not isinstance(value, bool):
            try:
                return int(value, 0) if isinstance(value, str) else int(value)
            except (TypeError, ValueError):
                pass
        raise ConfigurationError(f"{self.field}: {name} must be an integer, got {value!r}")

    @property
    def ignore_relative(self) -> bool:
        return bool(self.definition.get("ignoreRelative", False))

    def execute(self, provider: CachingProvider, address: str, resolved: Mapping[str, FieldResult]) -> FieldResult:
        for dep in self.dependencies:
            if not resolved[dep].ok:
                return FieldResult(self.field, error=f"dependency {dep} failed")
        try:
            value = self.resolve(provider, address, resolved)
        except HandlerError as e:
            return FieldResult(self.field, error=str(e) or e.__class__.__name__)
        except DiscoveryError:
            # data source and configuration failures concern the whole run
            raise
        except (LookupError, TypeError, ValueError, ArithmeticError, EncodingError, DecodingError) as e:
            logger.debug("%s: %s handler failed on %s", self.field, self.type, address, exc_info=True)
            return FieldResult(self.field, error=f"{e.__class__.__name__}: {e}")
        return FieldResult(self.field, value=value)

    @abstractmethod
    def resolve(self, provider: CachingProvider, address: str, resolved: Mapping[str, FieldResult]) -> Any:
        raise NotImplementedError


# -------------------------
# Templates
# -------------------------

def template_name(value: Any):
    if isinstance(value, str):
        m = _TEMPLATE_RE.match(value.strip())
        if m:
            return m.group(1)
    return None


def find_dependencies(definition: Any) -> List[str]:
    found: List[str] = []

    def walk(v: Any) -> None:
        name = template_name(v)
        if name is not None:
            if name not in found:
                found.append(name)
        elif isinstance(v, dict):
            for x in v.values():
                walk(x)
        elif isinstance(v, (list, tuple)):
            for x in v:
                walk(x)

    walk(definition)
    return found


def resolve_template(value: Any, resolved: Mapping[str, FieldResult]) -> Any:
    name = template_name(value)
    if name is not None:
        return resolved[name].value
    if isinstance(value, list):
        return [resolve_template(v, resolved) for v in value]
    return value
