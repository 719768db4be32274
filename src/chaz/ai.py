"""Sending prompts to backends and collecting completions."""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import httpx

from .backends import Backend, BackendRegistry
from .config import BackendType
from .constants import AICHAT_BINARY, BACKEND_TIMEOUT_SECONDS
from .error_handling import BackendError
from .logging_config import flatten, get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .backends import ModelSelection
    from .config import Config
    from .context import Prompt

logger = get_logger(__name__)


@asynccontextmanager
async def _http_client(client: httpx.AsyncClient | None) -> AsyncIterator[httpx.AsyncClient]:
    """Use the given client, or a short-lived one."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=BACKEND_TIMEOUT_SECONDS) as new_client:
        yield new_client


def _extract_completion_text(data: Any) -> str:  # noqa: ANN401
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        msg = f"Malformed completion response: {str(data)[:200]}"
        raise BackendError(msg) from e
    if not isinstance(content, str):
        msg = "Completion response contained no text"
        raise BackendError(msg)
    return content


async def complete_openai(
    backend: Backend,
    model: str | None,
    prompt: Prompt,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Run a chat completion against an OpenAI compatible API.

    Args:
        backend: The backend to call
        model: Model id, None for the backend's first listed model
        prompt: The assembled prompt
        client: Optional HTTP client to reuse

    Returns:
        The completion text

    Raises:
        BackendError: On any transport, status or payload failure

    """
    if not backend.api_base:
        msg = f"Backend {backend.name} has no api_base"
        raise BackendError(msg, backend=backend.name)
    if not backend.api_key:
        msg = f"Backend {backend.name} has no api_key"
        raise BackendError(msg, backend=backend.name)
    model = model or backend.default_model
    if not model:
        msg = f"No model selected for backend {backend.name}"
        raise BackendError(msg, backend=backend.name)

    url = f"{backend.api_base.rstrip('/')}/chat/completions"
    payload = {"model": model, "messages": prompt.chat_messages()}
    headers = {"Authorization": f"Bearer {backend.api_key}", "Content-Type": "application/json"}

    try:
        async with _http_client(client) as http:
            response = await http.post(url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        msg = f"{backend.name} returned HTTP {status}: {e.response.text[:200]}"
        raise BackendError(msg, backend=backend.name, status_code=status) from e
    except httpx.TimeoutException as e:
        msg = f"Request to {backend.name} timed out"
        raise BackendError(msg, backend=backend.name) from e
    except httpx.HTTPError as e:
        msg = f"Connection error talking to {backend.name}: {e}"
        raise BackendError(msg, backend=backend.name) from e
    except ValueError as e:
        msg = f"Malformed completion response from {backend.name}: {e}"
        raise BackendError(msg, backend=backend.name) from e

    return _extract_completion_text(data)


def _aichat_env(backend: Backend) -> dict[str, str]:
    env = dict(os.environ)
    if backend.config_dir:
        env["AICHAT_CONFIG_DIR"] = os.path.expanduser(backend.config_dir)
    return env


async def _run_aichat(backend: Backend, *args: str) -> tuple[int, str, str]:
    """Run the adapter and return (exit code, stdout, stderr)."""
    try:
        process = await asyncio.create_subprocess_exec(
            AICHAT_BINARY,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=_aichat_env(backend),
        )
    except OSError as e:
        msg = f"Could not start adapter {AICHAT_BINARY}: {e}"
        raise BackendError(msg, backend=backend.name) from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=BACKEND_TIMEOUT_SECONDS)
    except TimeoutError as e:
        process.kill()
        await process.wait()
        msg = f"Adapter {AICHAT_BINARY} timed out"
        raise BackendError(msg, backend=backend.name) from e

    returncode = process.returncode if process.returncode is not None else -1
    return returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")


async def complete_aichat(backend: Backend, model: str | None, prompt: Prompt) -> str:
    """Run a completion through the aichat adapter.

    The adapter takes the whole prompt, role included, as one string.
    """
    args = ["--no-stream"]
    if model:
        args += ["--model", model]
    args += ["--", prompt.to_text()]
    logger.debug("Running adapter", backend=backend.name, model=model)

    returncode, stdout, stderr = await _run_aichat(backend, *args)
    if returncode != 0:
        msg = f"Adapter exited with exit code {returncode}: {stderr.strip()}"
        raise BackendError(msg, backend=backend.name)
    if not stdout.strip():
        msg = stderr.strip() or "Adapter produced no output"
        raise BackendError(msg, backend=backend.name)
    return stdout


async def list_aichat_models(backend: Backend) -> list[str]:
    """Ask the adapter which models it knows. Returns an empty list on failure."""
    try:
        returncode, stdout, stderr = await _run_aichat(backend, "--list-models")
    except BackendError as e:
        logger.warning("Could not list adapter models", backend=backend.name, error=str(e))
        return []
    if returncode != 0:
        logger.warning("Could not list adapter models", backend=backend.name, error=flatten(stderr))
        return []
    return [line.strip() for line in stdout.splitlines() if line.strip()]


async def load_backend_registry(config: Config) -> BackendRegistry:
    """Build the registry from config, asking adapters without a model list for theirs."""
    backends = []
    for backend_config in config.effective_backends():
        backend = Backend.from_config(backend_config)
        if backend.kind == BackendType.AICHAT and not backend.models:
            models = await list_aichat_models(backend)
            backend = Backend.from_config(backend_config, models=models)
        logger.info("Loaded backend", backend=backend.name, kind=backend.kind.value, models=len(backend.models))
        backends.append(backend)
    return BackendRegistry(backends)


async def dispatch(
    registry: BackendRegistry,
    selection: ModelSelection,
    prompt: Prompt,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> str:
    """Send a prompt to the selected backend and return the completion.

    Raises:
        BackendError: If the backend is gone or the call fails for any reason

    """
    if selection.backend not in registry:
        msg = f"Backend {selection.backend} is not configured"
        raise BackendError(msg, backend=selection.backend)
    backend = registry.get(selection.backend)

    logger.info(
        "Request",
        backend=backend.name,
        model=selection.model,
        role=prompt.role_name,
        prompt=flatten(prompt.final_user_turn or ""),
    )
    if backend.kind == BackendType.OPENAI:
        completion = await complete_openai(backend, selection.model, prompt, client=http_client)
    else:
        completion = await complete_aichat(backend, selection.model, prompt)
    logger.info("Response", backend=backend.name, model=selection.model, response=flatten(completion))
    return completion
