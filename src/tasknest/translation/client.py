# src/tasknest/translation/client.py

from __future__ import annotations

import logging
import time
from typing import Any

import httpx
import openai
from openai import OpenAI

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a translation engine. Translate the user's text from {source} to {target}. "
    "Reply with the translation only: no quotes, no notes, no explanations. "
    "Keep line breaks, numbers, URLs and emoji unchanged."
)

# Model is skipped for this long after a 404.
BAD_MODEL_COOLDOWN_SECONDS = 3600.0


class TranslationError(RuntimeError):
    """Remote translation failed (configuration, auth, network or all models)."""


def _is_auth_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError))


def _is_rate_limit_error(exc: Exception) -> bool:
    return isinstance(exc, openai.RateLimitError)


def _is_connection_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError, httpx.TimeoutException))


def _is_not_found_error(exc: Exception) -> bool:
    return isinstance(exc, openai.NotFoundError)


def _extract_text(completion: Any) -> str:
    try:
        content = completion.choices[0].message.content
    except (AttributeError, IndexError):
        return ""
    return (content or "").strip()


class OpenAITranslator:
    """
    Translator backed by an OpenAI-compatible chat completions endpoint.

    - No network at construction time; the SDK client is created lazily.
    - Automatic SDK retries are disabled so a failing model falls through to
      the next one quickly.
    - Auth failures fail fast; 404/rate-limit/network errors try the next model.
    """

    def __init__(self, settings: Any) -> None:
        api_key = str(getattr(settings, "translate_api_key", "") or "").strip()
        base_url = str(getattr(settings, "translate_base_url", "") or "").strip()
        models = [m.strip() for m in (getattr(settings, "translate_models", None) or []) if m and m.strip()]

        if not api_key:
            raise TranslationError("Translation API key is not set. Set TASKNEST_TRANSLATE_API_KEY in your .env.")
        if not base_url:
            raise TranslationError("Translation base URL is not set. Set TASKNEST_TRANSLATE_BASE_URL in your .env.")
        if not models:
            raise TranslationError("Translation model list is empty. Set TASKNEST_TRANSLATE_MODELS in your .env.")

        self._api_key = api_key
        self._base_url = base_url
        self._models = models
        timeout_s = float(getattr(settings, "translate_timeout_seconds", 20.0) or 20.0)
        self._timeout = httpx.Timeout(connect=min(5.0, timeout_s), read=timeout_s, write=10.0, pool=5.0)
        self._client: OpenAI | None = None
        self._bad_models: dict[str, float] = {}

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(
                base_url=self._base_url,
                api_key=self._api_key,
                timeout=self._timeout,
                max_retries=0,
            )
        return self._client

    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        if not text.strip():
            return text

        client = self._get_client()
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT.format(source=source_lang, target=target_lang)},
            {"role": "user", "content": text},
        ]

        last_error: Exception | None = None
        now = time.monotonic()

        for model in self._models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            t0 = time.monotonic()
            try:
                completion = client.chat.completions.create(model=model, messages=messages)
            except openai.OpenAIError as e:
                last_error = e
                if _is_auth_error(e):
                    raise TranslationError("Translation authentication failed. Check your API key.") from e
                if _is_not_found_error(e):
                    self._bad_models[model] = time.monotonic() + BAD_MODEL_COOLDOWN_SECONDS
                    logger.info("Translate: model not available (404): %s", model)
                elif _is_rate_limit_error(e):
                    logger.info("Translate: rate-limited on model=%s, trying next", model)
                elif _is_connection_error(e):
                    logger.info("Translate: network/timeout error on model=%s, trying next", model)
                else:
                    logger.info("Translate: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            translated = _extract_text(completion)
            if translated:
                logger.debug("Translate: model=%s %s->%s in %.2fs", model, source_lang, target_lang, time.monotonic() - t0)
                return translated
            last_error = TranslationError(f"Model returned no content: {model}")

        if last_error is not None:
            if _is_rate_limit_error(last_error):
                raise TranslationError("Translation is rate-limited. Try again later.") from last_error
            if _is_connection_error(last_error):
                raise TranslationError("Translation network/timeout error. Try again later.") from last_error
            raise TranslationError("All translation models failed.") from last_error
        raise TranslationError("All translation models failed.")


def friendly_translation_error(err: Exception) -> str:
    return str(err).strip() or "Translation error."
