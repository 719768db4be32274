"""Backend registry: configured LLM backends and model selector resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .config import BackendConfig, BackendType
from .error_handling import BackendNameCollisionError, UnknownModelSelectorError
from .logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = get_logger(__name__)

MODEL_SEPARATOR = ":"


@dataclass(frozen=True)
class Backend:
    """A configured LLM access point.

    ``models`` empty means the backend publishes no catalogue, so any model id
    addressed to it is accepted.
    """

    name: str
    kind: BackendType
    api_base: str | None = None
    api_key: str | None = field(default=None, repr=False)
    config_dir: str | None = None
    models: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, backend_config: BackendConfig, models: Iterable[str] | None = None) -> Backend:
        """Build a Backend from its config entry, optionally overriding the model list."""
        model_names = models if models is not None else (m.name for m in backend_config.models)
        return cls(
            name=backend_config.backend_name,
            kind=backend_config.type,
            api_base=backend_config.api_base,
            api_key=backend_config.api_key,
            config_dir=backend_config.config_dir,
            models=tuple(model_names),
        )

    @property
    def default_model(self) -> str | None:
        """First listed model, if any."""
        return self.models[0] if self.models else None

    def accepts(self, model: str) -> bool:
        """Whether ``model`` may be addressed to this backend."""
        return not self.models or model in self.models


@dataclass(frozen=True)
class ModelSelection:
    """A resolved (backend, model) pair. ``model`` None means the backend's own default."""

    backend: str
    model: str | None

    def selector(self, *, qualified: bool) -> str:
        """Render back into selector form."""
        model = self.model or "default"
        return f"{self.backend}{MODEL_SEPARATOR}{model}" if qualified else model


class BackendRegistry:
    """The set of known backends.

    Read by every room; written only by the ``backend`` command. Each write is a
    single dict insertion, so concurrent readers see the registry either before or
    after it.
    """

    def __init__(self, backends: Iterable[Backend] = ()) -> None:
        self._backends: dict[str, Backend] = {}
        for backend in backends:
            if backend.name in self._backends:
                raise BackendNameCollisionError(backend.name)
            self._backends[backend.name] = backend

    def __len__(self) -> int:
        return len(self._backends)

    def __contains__(self, name: object) -> bool:
        return name in self._backends

    @property
    def is_multi_backend(self) -> bool:
        """Model selectors must be qualified with the backend name."""
        return len(self._backends) > 1

    def names(self) -> list[str]:
        """Backend names in registration order."""
        return list(self._backends)

    def get(self, name: str) -> Backend:
        """Look up a backend by name."""
        return self._backends[name]

    def register_adhoc(self, name: str, api_base: str, api_key: str) -> Backend:
        """Add an OpenAI compatible backend for the lifetime of the process.

        Raises:
            BackendNameCollisionError: If a backend with this name already exists

        """
        if name in self._backends:
            raise BackendNameCollisionError(name)
        backend = Backend(name=name, kind=BackendType.OPENAI, api_base=api_base, api_key=api_key)
        self._backends[name] = backend
        logger.info("Registered ad-hoc backend", backend=name, api_base=api_base)
        return backend

    def resolve(self, selector: str) -> ModelSelection:
        """Resolve a model selector to exactly one backend and model.

        A bare model id is only valid with a single backend. With several backends
        the selector must be ``backend:model``.

        Raises:
            UnknownModelSelectorError: If the selector does not resolve

        """
        selector = selector.strip()
        if not selector or not self._backends:
            raise UnknownModelSelectorError(selector, "no backends are configured" if selector else None)

        prefix, separator, model = selector.partition(MODEL_SEPARATOR)
        if separator and prefix in self._backends and model:
            backend = self._backends[prefix]
            if backend.accepts(model):
                return ModelSelection(backend=backend.name, model=model)
            if not self.is_multi_backend and backend.accepts(selector):
                return ModelSelection(backend=backend.name, model=selector)
            raise UnknownModelSelectorError(selector, f"backend '{prefix}' does not list model '{model}'")

        if self.is_multi_backend:
            example = f"{self.names()[0]}{MODEL_SEPARATOR}{selector}"
            msg = f"multiple backends exist, prefix the model with the backend name, e.g. {example}"
            raise UnknownModelSelectorError(selector, msg)

        backend = next(iter(self._backends.values()))
        if backend.accepts(selector):
            return ModelSelection(backend=backend.name, model=selector)
        raise UnknownModelSelectorError(selector, f"backend '{backend.name}' does not list it")

    def default_selection(self) -> ModelSelection | None:
        """The first backend with its first model, used when a room has picked nothing."""
        if not self._backends:
            return None
        backend = next(iter(self._backends.values()))
        return ModelSelection(backend=backend.name, model=backend.default_model)

    def list_known_models(self) -> list[str]:
        """All listed models, prefixed with the backend name when there is more than one backend."""
        qualified = self.is_multi_backend
        return [
            ModelSelection(backend=backend.name, model=model).selector(qualified=qualified)
            for backend in self._backends.values()
            for model in backend.models
        ]

    def describe(self, selection: ModelSelection | None) -> str:
        """Render a selection the way the user would type it."""
        if selection is None:
            return "unknown"
        return selection.selector(qualified=self.is_multi_backend)
