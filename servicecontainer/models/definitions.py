"""Service graph nodes: definitions, references and aliases."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# "module.path:attr.path", the shape of a console_scripts entry point.
IMPORT_PATH_PATTERN = re.compile(
    r"^[A-Za-z_][\w]*(\.[A-Za-z_][\w]*)*:[A-Za-z_][\w]*(\.[A-Za-z_][\w]*)*$"
)


class Reference(BaseModel):
    """A pointer to another service, resolved when the graph is compiled."""

    model_config = ConfigDict(frozen=True)

    id: str
    optional: bool = False

    def __str__(self) -> str:
        return self.id


class Alias(BaseModel):
    """An alternative id for an existing service."""

    model_config = ConfigDict(frozen=True)

    target: str
    public: bool = True


class MethodCall(BaseModel):
    """A method invoked on a freshly constructed service."""

    model_config = ConfigDict(frozen=True)

    method: str
    arguments: list[Any] = Field(default_factory=list)


class Definition(BaseModel):
    """How to construct one service.

    Definitions stay mutable while the builder is open so bundles and
    compiler passes can adjust them; the builder rejects changes once frozen.

    Examples
    --------
    >>> d = Definition(class_path="collections:OrderedDict")
    >>> d.public, d.shared
    (True, True)
    """

    model_config = ConfigDict(validate_assignment=True)

    class_path: str | None = None
    factory: str | None = None
    arguments: list[Any] | dict[str, Any] = Field(default_factory=list)
    calls: list[MethodCall] = Field(default_factory=list)
    public: bool = True
    shared: bool = True
    tags: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)

    def add_argument(self, value: Any) -> Definition:
        if isinstance(self.arguments, dict):
            raise TypeError("Cannot append a positional argument to keyword arguments.")
        self.arguments = [*self.arguments, value]
        return self

    def add_method_call(self, method: str, arguments: list[Any] | None = None) -> Definition:
        self.calls = [*self.calls, MethodCall(method=method, arguments=arguments or [])]
        return self

    def add_tag(self, name: str, **attributes: Any) -> Definition:
        tags = {key: list(value) for key, value in self.tags.items()}
        tags.setdefault(name, []).append(attributes)
        self.tags = tags
        return self

    @property
    def constructor(self) -> str | None:
        """The import path that produces the instance (factory wins over class)."""
        return self.factory or self.class_path
