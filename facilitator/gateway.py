"""Ollama model gateway.

Every generative-model call goes through `ModelGateway`. It talks to the
Ollama REST API via `requests`:

    from facilitator.gateway import ModelGateway
    gateway = ModelGateway()
    out = gateway.complete("Return {\"ok\": true}", format="json")
    print(out.data, out.model_id, out.elapsed_ms)

With `format="json"` the model output is parsed strictly. Anything that is
not valid JSON raises `GatewayError(kind=INVALID_OUTPUT)`; the raw string
is never handed back in place of parsed data.
"""
from __future__ import annotations
import json
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from .config import Settings, load_settings
from .errors import GatewayError, GatewayErrorKind
from .schemas import Completion, HealthStatus

logger = logging.getLogger(__name__)


class ModelGateway:
    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        health_timeout: Optional[float] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or load_settings()
        self.base_url = (base_url or settings.ollama_url).rstrip("/")
        self.model = model or settings.ollama_model
        self.timeout = timeout or settings.ollama_timeout
        self.health_timeout = health_timeout or settings.ollama_health_timeout

    def _post(self, path: str, payload: Dict[str, Any], model: str) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            r = requests.post(url, json=payload, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except requests.Timeout as e:
            # checked before ConnectionError: ConnectTimeout is both
            raise GatewayError(
                GatewayErrorKind.TIMEOUT, f"Model call timed out after {self.timeout:.0f}s", model
            ) from e
        except requests.ConnectionError as e:
            raise GatewayError(
                GatewayErrorKind.UNREACHABLE,
                f"Model service is not reachable at {self.base_url}. Start it with: ollama serve",
                model,
            ) from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 404:
                raise GatewayError(
                    GatewayErrorKind.MODEL_NOT_FOUND,
                    f'Model "{model}" not found. Pull it with: ollama pull {model}',
                    model,
                ) from e
            raise GatewayError(GatewayErrorKind.BACKEND, f"Model backend error: {e}", model) from e
        except (requests.RequestException, ValueError) as e:
            raise GatewayError(GatewayErrorKind.BACKEND, f"Model backend error: {e}", model) from e
        if not isinstance(data, dict):
            raise GatewayError(
                GatewayErrorKind.BACKEND, f"Model backend returned a {type(data).__name__} instead of an object", model
            )
        return data

    def complete(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        format: str = "json",
        temperature: float = 0.7,
        system: Optional[str] = None,
    ) -> Completion:
        model = model or self.model
        payload: Dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature},
        }
        if format == "json":
            payload["format"] = "json"
        if system:
            payload["system"] = system

        started = time.perf_counter()
        data = self._post("/api/generate", payload, model)
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        raw = data.get("response")
        if not isinstance(raw, str):
            raise GatewayError(GatewayErrorKind.INVALID_OUTPUT, "Model response had no text", model)
        model_id = data.get("model") or model
        logger.debug("Model %s answered in %d ms", model_id, elapsed_ms)

        if format != "json":
            return Completion(text=raw, model_id=model_id, elapsed_ms=elapsed_ms, done=bool(data.get("done", True)))
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Model %s returned invalid JSON (%d chars)", model_id, len(raw))
            raise GatewayError(
                GatewayErrorKind.INVALID_OUTPUT, "Model returned invalid structured output", model_id
            ) from e
        return Completion(data=parsed, model_id=model_id, elapsed_ms=elapsed_ms, done=bool(data.get("done", True)))

    def chat(
        self,
        messages: List[Dict[str, str]],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
    ) -> Completion:
        """Chat completion over a role/content message history (free text)."""
        model = model or self.model
        payload = {"model": model, "messages": messages, "stream": False, "options": {"temperature": temperature}}
        started = time.perf_counter()
        data = self._post("/api/chat", payload, model)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        message = data.get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise GatewayError(GatewayErrorKind.INVALID_OUTPUT, "Chat response had no message content", model)
        return Completion(
            text=content, model_id=data.get("model") or model, elapsed_ms=elapsed_ms, done=bool(data.get("done", True))
        )

    def _tags(self) -> List[str]:
        r = requests.get(f"{self.base_url}/api/tags", timeout=self.health_timeout)
        r.raise_for_status()
        return [m.get("name", "") for m in r.json().get("models") or []]

    def check_health(self) -> HealthStatus:
        try:
            return HealthStatus(available=True, models=self._tags())
        except (requests.RequestException, ValueError) as e:
            return HealthStatus(available=False, error=str(e))

    def list_models(self) -> List[str]:
        try:
            return self._tags()
        except requests.ConnectionError as e:
            raise GatewayError(
                GatewayErrorKind.UNREACHABLE, f"Model service is not reachable at {self.base_url}"
            ) from e
        except (requests.RequestException, ValueError) as e:
            raise GatewayError(GatewayErrorKind.BACKEND, f"Failed to fetch available models: {e}") from e
