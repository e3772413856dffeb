"""Translation client for subtitle text using the OpenAI chat completions API."""

import json
import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from common.config import settings
from common.gpt_utils import (
    GPTJSONParsingError,
    clean_markdown_code_fences,
    parse_json_robustly,
)
from common.retry_utils import RetryPolicy, retry_with_exponential_backoff
from common.string_utils import truncate_for_logging
from common.utils import LanguageUtils

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_TEMPLATE = """You are a professional subtitle translator. You will receive a JSON object with subtitle segments to translate from {source} to {target}.

OUTPUT FORMAT:
Return ONLY a JSON array: [{{"id": 1, "text": "translation"}}, {{"id": 2, "text": "translation"}}]

TRANSLATION RULES:
- Translate naturally and idiomatically, not word-by-word
- Keep one output item per input segment, with the same id
- Keep line breaks inside a segment where they fall naturally
- Preserve HTML tags (<i>, <b>, <font>) and ASS override tags ({{\\i1}}) exactly
- Keep bracketed sound descriptions, translated
- Return ONLY the JSON array, no explanations or markdown fences
"""


class SubtitleTranslator:
    """
    Translates batches of subtitle texts with an OpenAI chat model.

    Without an API key it runs in mock mode: no request is made and every
    text comes back tagged with the target language.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.model = model or settings.openai_model
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.client: Optional[AsyncOpenAI] = None

        api_key = api_key or settings.openai_api_key
        if not api_key:
            logger.warning("No OpenAI API key configured, translator runs in mock mode")
            return

        # Retries are driven by retry_policy, not by the OpenAI client
        self.client = AsyncOpenAI(
            api_key=api_key,
            timeout=settings.openai_request_timeout,
            max_retries=0,
        )
        logger.info(f"OpenAI translator ready (model: {self.model})")

    @property
    def is_mock(self) -> bool:
        return self.client is None

    async def translate_batch(
        self,
        texts: List[str],
        source_language: str,
        target_language: str,
        custom_prompt: str = "",
    ) -> List[str]:
        """
        Translate a batch of subtitle texts.

        Transient API failures are retried according to ``retry_policy``.

        Args:
            texts: Subtitle texts to translate
            source_language: Source language name or ISO code
            target_language: Target language name or ISO code
            custom_prompt: Extra user instructions (tone, glossary, ...)

        Returns:
            Translations aligned with ``texts``; an empty string marks a
            segment the model left out
        """
        if not texts:
            return []

        if self.is_mock:
            logger.debug(f"Mock translation of {len(texts)} segments")
            return [f"[TRANSLATED to {target_language}] {text}" for text in texts]

        request = retry_with_exponential_backoff(self.retry_policy)(self._request_translations)
        return await request(texts, source_language, target_language, custom_prompt)

    async def _request_translations(
        self,
        texts: List[str],
        source_language: str,
        target_language: str,
        custom_prompt: str,
    ) -> List[str]:
        source_name = LanguageUtils.iso_to_language_name(source_language)
        target_name = LanguageUtils.iso_to_language_name(target_language)
        logger.info(f"Requesting {len(texts)} segments {source_name} -> {target_name}")

        request_params: Dict[str, Any] = {
            "model": self.model,
            "messages": self._build_messages(texts, source_name, target_name, custom_prompt),
            "max_completion_tokens": settings.openai_max_tokens,
        }
        # Reasoning models only accept the default temperature
        if "nano" not in self.model.lower():
            request_params["temperature"] = settings.openai_temperature

        response = await self.client.chat.completions.create(**request_params)
        content = self._extract_content(response, len(texts))

        translations = self._parse_translation_response(content, len(texts))
        returned = sum(1 for text in translations if text)
        logger.info(f"Received {returned}/{len(texts)} translated segments")
        return translations

    @staticmethod
    def _extract_content(response: Any, segment_count: int) -> str:
        """Message text of the first choice; empty replies are permanent errors."""
        if not response.choices:
            raise ValueError("OpenAI API returned no choices")

        choice = response.choices[0]
        if not choice.message.content:
            raise ValueError(
                f"OpenAI API returned empty content (finish_reason={choice.finish_reason})"
            )

        if choice.finish_reason == "length":
            logger.warning(
                f"⚠️  Reply truncated at max_completion_tokens for {segment_count} "
                f"segments; the missing ones keep their original text"
            )
        return choice.message.content

    def _build_messages(
        self,
        texts: List[str],
        source_name: str,
        target_name: str,
        custom_prompt: str,
    ) -> List[Dict[str, str]]:
        return [
            {
                "role": "system",
                "content": self._build_system_prompt(source_name, target_name, custom_prompt),
            },
            {
                "role": "user",
                "content": self._build_translation_prompt(texts, source_name, target_name),
            },
        ]

    @staticmethod
    def _build_system_prompt(source_name: str, target_name: str, custom_prompt: str) -> str:
        prompt = SYSTEM_PROMPT_TEMPLATE.format(source=source_name, target=target_name)
        if custom_prompt and custom_prompt.strip():
            prompt += f"\nADDITIONAL INSTRUCTIONS:\n{custom_prompt.strip()}\n"
        return prompt

    @staticmethod
    def _build_translation_prompt(texts: List[str], source_name: str, target_name: str) -> str:
        """User message carrying the numbered segments as JSON."""
        payload = {
            "segments": [{"id": i, "text": text} for i, text in enumerate(texts, 1)],
            "source": source_name,
            "target": target_name,
        }
        return (
            f"Translate the subtitle segments below from {source_name} to {target_name}.\n\n"
            f"INPUT:\n{json.dumps(payload, ensure_ascii=False, indent=2)}"
        )

    @staticmethod
    def _parse_translation_response(reply: str, expected_count: int) -> List[str]:
        """
        Align the model's JSON array reply with the request.

        Items are matched by id, not by position. Ids the model skipped come
        back as empty strings so the caller can keep the original text.

        Raises:
            GPTJSONParsingError: If the reply is not a JSON array (retried)
        """
        try:
            data = parse_json_robustly(clean_markdown_code_fences(reply))
        except GPTJSONParsingError:
            logger.error(f"Unparsable translation reply: {truncate_for_logging(reply)}")
            raise

        if not isinstance(data, list):
            raise GPTJSONParsingError(f"Expected a JSON array, got {type(data).__name__}")

        translations = [""] * expected_count
        for item in data:
            if not isinstance(item, dict) or not isinstance(item.get("text"), str):
                logger.warning(f"Ignoring reply item without text: {item!r}")
                continue
            try:
                position = int(item.get("id")) - 1
            except (ValueError, TypeError):
                logger.warning(f"Ignoring reply item with invalid id: {item!r}")
                continue
            if 0 <= position < expected_count:
                translations[position] = item["text"].strip()

        missing = [i + 1 for i, text in enumerate(translations) if not text]
        if missing:
            logger.warning(
                f"⚠️  Reply is missing {len(missing)}/{expected_count} segments: {missing[:10]}"
            )
        return translations
