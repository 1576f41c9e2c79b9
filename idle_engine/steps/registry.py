"""
Step packs and the named handler registration table.

A step pack contributes step-type metadata (required capabilities) and the
named functions that execute those step types. Handlers are registered by
name at startup; workflows and provider maps only ever refer to handlers by
that name, never by an inline callable.
"""

import inspect
import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, Union

import yaml

from ..errors import StepHandlerNotFound, ValidationError

logger = logging.getLogger(__name__)

HANDLER_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")


def validate_handler(name: str, handler: Any) -> None:
    """
    Ensure a handler is a stable, named function.

    Lambdas, nested closures, partials and arbitrary callables are rejected so
    that registered handlers stay injection-resistant.

    Raises:
        ValidationError: If the name or handler is not acceptable
    """
    if not isinstance(name, str) or not HANDLER_NAME_PATTERN.match(name):
        raise ValidationError(f"Invalid handler name: {name!r}", path=f"Handlers.{name}")

    if not (inspect.isfunction(handler) or inspect.ismethod(handler)):
        raise ValidationError(
            f"Handler '{name}' must be a named function, got {type(handler).__name__}",
            path=f"Handlers.{name}",
        )

    if handler.__name__ == "<lambda>" or "<locals>" in handler.__qualname__:
        raise ValidationError(
            f"Handler '{name}' must be a module-level named function, not an inline callable",
            path=f"Handlers.{name}",
        )


def accepts_context(handler: Callable) -> bool:
    """Return True if the handler takes (context, step) rather than the legacy (step)."""
    params = inspect.signature(handler).parameters.values()
    positional = [
        p for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    has_varargs = any(p.kind == inspect.Parameter.VAR_POSITIONAL for p in params)
    return has_varargs or len(positional) >= 2


def call_handler(handler: Callable, context: Any, step: Any) -> Any:
    """Invoke a handler using whichever calling convention it supports."""
    if accepts_context(handler):
        return handler(context, step)
    return handler(step)


class StepPack:
    """
    An independently loaded component contributing step types.

    Metadata entries map a step type to ``RequiredCapabilities`` and,
    optionally, the ``Handler`` name that executes it by default.
    """

    def __init__(
        self,
        name: str,
        metadata: Optional[Mapping[str, Mapping[str, Any]]] = None,
        handlers: Iterable[Callable] = (),
    ):
        """
        Initialize the step pack.

        Args:
            name: Pack name, used in duplicate-metadata errors
            metadata: Step type -> {"RequiredCapabilities": [...], "Handler": name}
            handlers: Named functions implementing the pack's step types
        """
        self.name = name
        self.handlers: Dict[str, Callable] = {}
        self.step_handlers: Dict[str, str] = {}
        self._catalog: Dict[str, Dict[str, Any]] = {}

        for handler in handlers:
            validate_handler(handler.__name__, handler)
            self.handlers[handler.__name__] = handler

        for step_type, entry in (metadata or {}).items():
            if not isinstance(entry, Mapping):
                raise ValidationError(
                    f"Metadata for step type '{step_type}' in pack '{name}' must be a mapping",
                    path=f"{name}.{step_type}",
                )
            entry = dict(entry)
            handler_name = entry.pop("Handler", None)
            if handler_name is not None:
                if handler_name not in self.handlers:
                    raise ValidationError(
                        f"Step pack '{name}' maps '{step_type}' to unknown handler '{handler_name}'",
                        path=f"{name}.{step_type}.Handler",
                    )
                self.step_handlers[step_type] = handler_name
            self._catalog[step_type] = entry

    @classmethod
    def from_yaml(cls, name: str, path: Union[str, Path], handlers: Iterable[Callable] = ()) -> "StepPack":
        """
        Load a step pack whose metadata catalog is a YAML file.

        Args:
            name: Pack name
            path: YAML file mapping step types to metadata
            handlers: Named functions implementing the pack's step types

        Returns:
            StepPack instance
        """
        path = Path(path)
        with open(path, encoding="utf-8") as f:
            metadata = yaml.safe_load(f) or {}

        if not isinstance(metadata, dict):
            raise ValidationError(f"Step metadata file {path} must contain a mapping", path=str(path))

        logger.info(f"Loaded {len(metadata)} step types for pack {name} from {path}")
        return cls(name, metadata, handlers)

    def get_step_metadata_catalog(self) -> Dict[str, Dict[str, Any]]:
        """Return a copy of the pack's step-type metadata catalog."""
        return {step_type: dict(entry) for step_type, entry in self._catalog.items()}

    def __repr__(self):
        return f"StepPack({self.name!r}, step_types={sorted(self._catalog)})"


class StepHandlerRegistry:
    """
    Explicit registration table: handler name -> function.

    Also records the default handler name for each step type contributed by
    registered packs.
    """

    def __init__(self):
        self._handlers: Dict[str, Callable] = {}
        self._defaults: Dict[str, str] = {}

    def register(self, name: str, handler: Callable, step_types: Iterable[str] = ()) -> None:
        """
        Register a named handler.

        Args:
            name: Name step registries refer to
            handler: Module-level function taking (context, step) or legacy (step)
            step_types: Step types this handler serves by default
        """
        validate_handler(name, handler)
        existing = self._handlers.get(name)
        if existing is not None and existing is not handler:
            raise ValidationError(f"Handler name '{name}' is already registered", path=f"Handlers.{name}")

        self._handlers[name] = handler
        for step_type in step_types:
            self._defaults[step_type] = name
        logger.debug(f"Registered step handler {name}")

    def register_pack(self, pack: StepPack) -> None:
        """Register all handlers and default step-type mappings of a pack."""
        for name, handler in pack.handlers.items():
            self.register(name, handler)
        self._defaults.update(pack.step_handlers)

    def has_handler(self, name: str) -> bool:
        return name in self._handlers

    def resolve(self, step_type: str, step_registry: Optional[Mapping[str, str]] = None) -> Tuple[str, Callable]:
        """
        Resolve the handler for a step type.

        The provider map's StepRegistry wins over pack defaults.

        Returns:
            (handler name, handler function)

        Raises:
            StepHandlerNotFound: If no handler is mapped or the name is unregistered
        """
        name = (step_registry or {}).get(step_type) or self._defaults.get(step_type)
        if name is None:
            raise StepHandlerNotFound(f"No handler registered for step type '{step_type}'")

        handler = self._handlers.get(name)
        if handler is None:
            raise StepHandlerNotFound(
                f"Handler '{name}' for step type '{step_type}' is not registered"
            )
        return name, handler


def validate_step_registry(step_registry: Any, path: str = "Providers.StepRegistry") -> None:
    """
    Validate the shape of a StepRegistry: step type -> handler name (string).

    Raises:
        ValidationError: If the registry is not a mapping of strings to handler names
    """
    if step_registry is None:
        return
    if not isinstance(step_registry, Mapping):
        raise ValidationError(f"{path} must be a mapping of step type to handler name", path=path)
    for step_type, handler_name in step_registry.items():
        if not isinstance(handler_name, str) or not HANDLER_NAME_PATTERN.match(handler_name):
            raise ValidationError(
                f"{path}.{step_type} must be a registered handler name, got {handler_name!r}",
                path=f"{path}.{step_type}",
            )
