"""Secret separation and resolution.

Two concerns live here.

**Extraction.** Module schemas mark sensitive string fields with
``secret_field()``. ``extract_secrets`` walks the module's JSON schema next to
its configuration and pulls every non-empty secret value out into a flat
``SecretsMap`` keyed ``"<module>.<dotted.path>"``, leaving ``""`` in its place.
``inject_secrets`` puts them back. Both are pure: inputs are never mutated.

**Resolution.** Secrets supplied at runtime (environment, mounted files, an
in-memory map) are looked up through a ``SecretsResolver`` trying its
backends in order.

Manifesto:
    - **Secrets never persist inside the config tree:** the stored tree only
      ever holds blanked values
    - **Secrets never hit the log:** only key names are logged
    - **Runtime wins:** values supplied at boot override extracted ones

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │ auth config             schema (model_json_schema)              │
        │ {"jwt": {"secret":"x"}} {"jwt": {"$ref": Jwt}} Jwt.secret: secret│
        └──────────────┬──────────────────────────────────────────────────┘
                       │ extract_secrets("auth", config, schema)
                       ▼
        ┌─────────────────────────────────────────────────────────────────┐
        │ configs: {"jwt": {"secret": ""}}                                 │
        │ secrets: {"auth.jwt.secret": "x"}                               │
        └─────────────────────────────────────────────────────────────────┘

        SecretsResolver(backends=[DictSecretBackend, EnvSecretBackend, FileSecretBackend])
            resolve("auth.jwt.secret")
              → Dict: "auth.jwt.secret"
              → Env:  KEEL_SECRET_AUTH__JWT__SECRET
              → File: <dir>/auth.jwt.secret

Examples:
    >>> from pydantic import BaseModel
    >>> from keel.core.secrets import secret_field, extract_secrets
    >>> class Jwt(BaseModel):
    ...     secret: str = secret_field()
    >>> out = extract_secrets("auth", {"secret": "s3cr3t"}, Jwt.model_json_schema())
    >>> out.secrets
    {'auth.secret': 's3cr3t'}
    >>> out.configs
    {'secret': ''}

Tags:
    secrets, credentials, security, configuration, keel-core
"""

from __future__ import annotations

import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import Field

from keel.core.errors import ConfigError, ErrorContext
from keel.core.objects import clone, join_path, set_path, split_path

SecretsMap = dict[str, str]

SECRET_MARKER = "secret"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class MissingSecretError(ConfigError):
    """Raised when a secret cannot be resolved from any backend."""

    def __init__(self, key: str, tried_backends: list[str] | None = None):
        self.key = key
        self.tried_backends = tried_backends or []
        msg = f"Secret not found: {key}"
        if tried_backends:
            msg += f" (tried: {', '.join(tried_backends)})"
        super().__init__(msg, context=ErrorContext(path=key))


# ---------------------------------------------------------------------------
# Secret backends
# ---------------------------------------------------------------------------


class SecretBackend(ABC):
    """Abstract base for secret backends."""

    @abstractmethod
    def get(self, name: str) -> str | None:
        """Retrieve a secret by its dotted key, or None if absent."""
        ...


class EnvSecretBackend(SecretBackend):
    """Resolve secrets from environment variables.

    ``auth.jwt.secret`` is looked up as ``KEEL_SECRET_AUTH__JWT__SECRET``.
    """

    def __init__(self, prefix: str = "KEEL_SECRET_"):
        self.prefix = prefix

    def env_name(self, name: str) -> str:
        return f"{self.prefix}{name.replace('.', '__').upper()}"

    def get(self, name: str) -> str | None:
        return os.environ.get(self.env_name(name))


class FileSecretBackend(SecretBackend):
    """Resolve secrets from files named after the dotted key.

    Designed for Docker secrets (``/run/secrets/``) and Kubernetes
    mounted secrets. Caches file contents after first read.
    """

    def __init__(self, secrets_dir: str | Path = "/run/secrets"):
        self.secrets_dir = Path(secrets_dir)
        self._cache: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> str | None:
        with self._lock:
            if name in self._cache:
                return self._cache[name]

        secret_path = self.secrets_dir / name
        if not secret_path.is_file():
            return None

        content = secret_path.read_text().strip()
        with self._lock:
            self._cache[name] = content
        return content


class DictSecretBackend(SecretBackend):
    """In-memory secret backend, typically the map passed at boot."""

    def __init__(self, secrets: Mapping[str, str] | None = None):
        self._secrets = dict(secrets) if secrets else {}

    def get(self, name: str) -> str | None:
        return self._secrets.get(name)


_SENTINEL = object()


class SecretsResolver:
    """Multi-backend secrets resolver.

    Resolves secrets by trying backends in order until one succeeds.
    """

    def __init__(self, backends: list[SecretBackend] | None = None):
        self._backends: list[SecretBackend] = list(backends) if backends is not None else []

    def resolve(self, key: str, default: Any = _SENTINEL) -> str | None:
        """Resolve a secret by key.

        Raises:
            MissingSecretError: If no backend has the secret and no default given
        """
        tried: list[str] = []
        for backend in self._backends:
            tried.append(type(backend).__name__)
            value = backend.get(key)
            if value is not None:
                return value
        if default is not _SENTINEL:
            return default
        raise MissingSecretError(key, tried)

    def resolve_many(self, keys: list[str]) -> SecretsMap:
        """Resolve every key some backend knows, skipping the rest."""
        found: SecretsMap = {}
        for key in keys:
            value = self.resolve(key, default=None)
            if value is not None:
                found[key] = value
        return found

    def add_backend(self, backend: SecretBackend, priority: int = -1) -> None:
        if priority < 0:
            self._backends.append(backend)
        else:
            self._backends.insert(priority, backend)


# ---------------------------------------------------------------------------
# Schema marking
# ---------------------------------------------------------------------------


def secret_field(default: str = "", **kwargs: Any) -> Any:
    """A pydantic ``Field`` whose JSON schema carries ``"secret": true``."""
    extra = dict(kwargs.pop("json_schema_extra", None) or {})
    extra[SECRET_MARKER] = True
    return Field(default=default, json_schema_extra=extra, **kwargs)


# ---------------------------------------------------------------------------
# Schema walking
# ---------------------------------------------------------------------------

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "object": (dict,),
    "array": (list,),
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "null": (type(None),),
}


def _resolve(node: Mapping[str, Any], defs: Mapping[str, Any]) -> dict[str, Any]:
    """Follow ``$ref`` chains, merging sibling keys over the target."""
    resolved = dict(node)
    seen: set[str] = set()
    while "$ref" in resolved:
        ref = resolved.pop("$ref")
        if ref in seen:
            break
        seen.add(ref)
        target = defs.get(ref.rsplit("/", 1)[-1], {})
        resolved = {**target, **resolved}
    # pydantic < 2.9 wraps a lone ref in allOf
    all_of = resolved.get("allOf")
    if isinstance(all_of, list) and len(all_of) == 1:
        rest = {k: v for k, v in resolved.items() if k != "allOf"}
        resolved = {**_resolve(all_of[0], defs), **rest}
    return resolved


def _type_matches(node: Mapping[str, Any], value: Any) -> bool:
    declared = node.get("type")
    if declared is None:
        if "properties" in node:
            declared = "object"
        elif "items" in node:
            declared = "array"
        else:
            return True
    names = declared if isinstance(declared, list) else [declared]
    for name in names:
        types = _JSON_TYPES.get(name, ())
        if isinstance(value, bool) and name in ("integer", "number"):
            continue
        if isinstance(value, types):
            return True
    return False


def _discriminators_match(node: Mapping[str, Any], value: Any) -> bool:
    if not isinstance(value, dict):
        return True
    for key, prop in (node.get("properties") or {}).items():
        if "const" in prop:
            expected = [prop["const"]]
        elif isinstance(prop.get("enum"), list) and len(prop["enum"]) == 1:
            expected = prop["enum"]
        else:
            continue
        if value.get(key) not in expected:
            return False
    return True


def _select_branch(node: dict[str, Any], value: Any, defs: Mapping[str, Any]) -> dict[str, Any]:
    for keyword in ("anyOf", "oneOf"):
        branches = node.get(keyword)
        if not isinstance(branches, list):
            continue
        siblings = {k: v for k, v in node.items() if k not in (keyword, "discriminator")}
        for branch in branches:
            candidate = _resolve(branch, defs)
            if _type_matches(candidate, value) and _discriminators_match(candidate, value):
                merged = {**candidate, **siblings}
                return _select_branch(merged, value, defs)
        return siblings
    return node


def iter_secret_nodes(
    schema: Mapping[str, Any],
    value: Any,
    *,
    include_empty: bool = False,
    _defs: Mapping[str, Any] | None = None,
    _path: tuple[str | int, ...] = (),
) -> Iterator[tuple[tuple[str | int, ...], str]]:
    """Yield ``(path, value)`` for every secret-marked string in ``value``."""
    defs = _defs if _defs is not None else schema.get("$defs", {})
    node = _select_branch(_resolve(schema, defs), value, defs)

    if isinstance(value, str):
        if node.get(SECRET_MARKER) and (value or include_empty):
            yield _path, value
        return

    if isinstance(value, dict):
        properties = node.get("properties") or {}
        additional = node.get("additionalProperties")
        for key, child in value.items():
            if key in properties:
                sub = properties[key]
            elif isinstance(additional, dict):
                sub = additional
            else:
                continue
            yield from iter_secret_nodes(
                sub, child, include_empty=include_empty, _defs=defs, _path=_path + (key,)
            )
        return

    if isinstance(value, list):
        items = node.get("items")
        if isinstance(items, dict):
            for i, child in enumerate(value):
                yield from iter_secret_nodes(
                    items, child, include_empty=include_empty, _defs=defs, _path=_path + (i,)
                )


def secret_key(module_key: str, path: tuple[str | int, ...]) -> str:
    return join_path((module_key, *path))


@dataclass
class ExtractedSecrets:
    """Configuration with secrets blanked, plus the secrets pulled out."""

    configs: Any
    secrets: SecretsMap = field(default_factory=dict)


def extract_secrets(module_key: str, config: Any, schema: Mapping[str, Any]) -> ExtractedSecrets:
    """Pull every non-empty secret out of one module's configuration."""
    configs = clone(config)
    secrets: SecretsMap = {}
    for path, value in iter_secret_nodes(schema, config):
        secrets[secret_key(module_key, path)] = value
        set_path(configs, path, "")
    return ExtractedSecrets(configs=configs, secrets=secrets)


def secret_paths(module_key: str, config: Any, schema: Mapping[str, Any]) -> list[str]:
    """Every secret key present in ``config``, whether filled or blank."""
    return [
        secret_key(module_key, path)
        for path, _ in iter_secret_nodes(schema, config, include_empty=True)
    ]


def inject_secrets(configs: Mapping[str, Any], secrets: Mapping[str, str]) -> dict[str, Any]:
    """Return a clone of a module tree with ``secrets`` written back."""
    result = clone(dict(configs))
    for key, value in secrets.items():
        segments = split_path(key)
        if not segments or segments[0] not in result:
            continue
        set_path(result, segments, value)
    return result


__all__ = [
    "SecretsMap",
    "MissingSecretError",
    "SecretBackend",
    "EnvSecretBackend",
    "FileSecretBackend",
    "DictSecretBackend",
    "SecretsResolver",
    "secret_field",
    "iter_secret_nodes",
    "secret_key",
    "secret_paths",
    "ExtractedSecrets",
    "extract_secrets",
    "inject_secrets",
]
