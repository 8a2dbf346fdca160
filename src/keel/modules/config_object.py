"""
Validated, mutable configuration of one module.

``ConfigObject`` holds a module's config as a JSON dict produced by its
pydantic model (defaults filled in) and exposes the four mutation operations
the rest of the system uses: ``set``, ``patch``, ``overwrite``, ``remove``.

Every mutation:
    1. checks restricted paths (``bypass()`` lifts the check once)
    2. validates the candidate against the model (``SchemaRejectionError``)
    3. awaits the module's ``on_before_update(current, proposed)``, which may
       veto by raising or return a transformed config
    4. stores the result
    5. notifies the update handler unless ``no_emit``

The update handler is the default listener fixed at construction, unless the
caller passes an explicit ``on_update`` strategy for that one call. The safe
mutation proxy uses that argument to run the rebuild-and-save cycle inside
its own error handling. ``set(..., skip_before_update=True)`` leaves out step
3; rollback to a stored snapshot uses it so a veto cannot block the restore.

Tags:
    configuration, validation, pydantic, keel-modules
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Iterator, Mapping
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from keel.core.errors import PathNotFoundError, RestrictedPathError, SchemaRejectionError
from keel.core.objects import (
    clone,
    deep_merge,
    get_path,
    has_path,
    remove_path,
    set_path,
    split_path,
)

UpdateHandler = Callable[[dict[str, Any]], Awaitable[None]]
BeforeUpdateHandler = Callable[[dict[str, Any], dict[str, Any]], Awaitable[dict[str, Any]]]
OverwritePath = str | re.Pattern[str]


def _full_path_keys(value: Any, prefix: str = "") -> Iterator[str]:
    if not isinstance(value, Mapping):
        return
    for key, child in value.items():
        full = f"{prefix}.{key}" if prefix else str(key)
        yield full
        yield from _full_path_keys(child, full)


def validate_config(schema: type[BaseModel], config: Any, *, module: str | None = None) -> dict[str, Any]:
    """Validate ``config`` against ``schema`` and return the JSON form with defaults."""
    try:
        return schema.model_validate(clone(config)).model_dump(mode="json")
    except PydanticValidationError as e:
        errors = [
            {"loc": [str(p) for p in err["loc"]], "msg": err["msg"], "type": err["type"]}
            for err in e.errors()
        ]
        raise SchemaRejectionError(
            f"Invalid configuration for {module or schema.__name__}",
            errors=errors,
        ).with_context(module=module) from e


class ConfigObject:
    def __init__(
        self,
        schema: type[BaseModel],
        initial: Mapping[str, Any] | None = None,
        *,
        name: str | None = None,
        on_update: UpdateHandler | None = None,
        on_before_update: BeforeUpdateHandler | None = None,
        restrict_paths: list[str] | None = None,
        overwrite_paths: list[OverwritePath] | None = None,
    ):
        self._schema = schema
        self._name = name
        self._on_update = on_update
        self._on_before_update = on_before_update
        self._restrict_paths = list(restrict_paths or [])
        self._overwrite_paths = list(overwrite_paths or [])
        self._bypass = False
        self._default = validate_config(schema, {}, module=name)
        self._config = validate_config(schema, initial or {}, module=name)

    @property
    def schema(self) -> type[BaseModel]:
        return self._schema

    def get(self) -> dict[str, Any]:
        return clone(self._config)

    def default(self) -> dict[str, Any]:
        return clone(self._default)

    def has(self, path: str) -> bool:
        return has_path(self._config, path)

    async def set(
        self,
        config: Mapping[str, Any],
        no_emit: bool = False,
        on_update: UpdateHandler | None = None,
        skip_before_update: bool = False,
    ) -> dict[str, Any]:
        valid = validate_config(self._schema, config, module=self._name)

        # runs regardless of no_emit
        if self._on_before_update is not None and not skip_before_update:
            valid = await self._on_before_update(self.get(), valid)

        self._config = clone(valid)

        if not no_emit:
            handler = on_update or self._on_update
            if handler is not None:
                await handler(self.get())

        return self.get()

    def bypass(self) -> ConfigObject:
        """Skip the restricted-path check for the next mutation only."""
        self._bypass = True
        return self

    def _throw_if_restricted(self, target: str | Mapping[str, Any]) -> None:
        if self._bypass:
            self._bypass = False
            return

        for path in self._restrict_paths:
            if isinstance(target, str):
                restricted = target.startswith(path)
            else:
                restricted = has_path(target, path)
            if restricted:
                raise RestrictedPathError(path, module=self._name)

    def _partial(self, path: str, value: Any) -> Any:
        return set_path({}, path, clone(value)) if path else clone(value)

    def _overwrite_targets(self, path: str, value: Any) -> list[str]:
        if not self._overwrite_paths:
            return []
        keys = [f"{path}.{k}" if path else k for k in _full_path_keys(value)]
        if path:
            keys.insert(0, path)

        def matches(key: str) -> bool:
            for pattern in self._overwrite_paths:
                if isinstance(pattern, str) and key == pattern:
                    return True
                if isinstance(pattern, re.Pattern) and pattern.search(key):
                    return True
            return False

        matching = [k for k in keys if matches(k)]
        # an ancestor overwrite already covers its descendants
        return [k for k in matching if not any(k != o and k.startswith(o + ".") for o in matching)]

    async def patch(
        self,
        path: str,
        value: Any,
        on_update: UpdateHandler | None = None,
    ) -> tuple[Any, dict[str, Any]]:
        """Deep-merge ``value`` at ``path``; sequences and scalars are replaced."""
        partial = self._partial(path, value)
        self._throw_if_restricted(partial)

        config = deep_merge(self.get(), partial)
        for target in self._overwrite_targets(path, value):
            set_path(config, target, clone(get_path(partial, target)))

        new_config = await self.set(config, on_update=on_update)
        return partial, new_config

    async def overwrite(
        self,
        path: str,
        value: Any,
        on_update: UpdateHandler | None = None,
    ) -> tuple[Any, dict[str, Any]]:
        """Replace the value at ``path`` wholesale."""
        partial = self._partial(path, value)
        self._throw_if_restricted(partial)

        config = set_path(self.get(), path, clone(value)) if path else clone(value)
        new_config = await self.set(config, on_update=on_update)
        return partial, new_config

    async def remove(
        self,
        path: str,
        on_update: UpdateHandler | None = None,
    ) -> tuple[Any, dict[str, Any]]:
        self._throw_if_restricted(path)

        segments = split_path(path)
        if not segments or not has_path(self._config, segments):
            raise PathNotFoundError(path, module=self._name)

        config = self.get()
        removed = remove_path(config, segments)
        new_config = await self.set(config, on_update=on_update)
        return removed, new_config
