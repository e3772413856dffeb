"""Utility functions for common operations across the application."""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID, uuid4

logger = logging.getLogger(__name__)


class MathUtils:
    """Mathematical utility functions."""

    @staticmethod
    def calculate_percentage(completed: float, total: float) -> float:
        """
        Calculate the percentage of completed items out of total items.

        Args:
            completed: Number of completed items
            total: Total number of items

        Returns:
            Percentage as a float between 0 and 100

        Example:
            >>> MathUtils.calculate_percentage(5, 10)
            50.0
        """
        if total <= 0:
            return 0.0
        return (completed / total) * 100

    @staticmethod
    def clamp(value: float, lower: float, upper: float) -> float:
        """Clamp value into the closed range [lower, upper]."""
        return max(lower, min(value, upper))


class JobIdUtils:
    """Identifier helpers for runs and uploaded files."""

    @staticmethod
    def generate_job_id() -> UUID:
        """Generate a new random UUID4."""
        return uuid4()


class DateTimeUtils:
    """Date and time utility functions."""

    @staticmethod
    def get_current_utc_datetime() -> datetime:
        """
        Get the current UTC datetime.

        Returns:
            Current datetime in UTC timezone
        """
        return datetime.now(timezone.utc)

    @staticmethod
    def get_date_string_for_log_file() -> str:
        """
        Get a date string suitable for log file names.

        Returns:
            Date string in YYYYMMDD format
        """
        return datetime.now().strftime("%Y%m%d")


class TextUtils:
    """Counting helpers for subtitle text."""

    WORD_PATTERN = re.compile(r"\S+")

    @staticmethod
    def count_words(text: Optional[str]) -> int:
        """
        Count whitespace-separated tokens.

        Example:
            >>> TextUtils.count_words("1\\n00:00:01,000 --> 00:00:02,000\\nSalom")
            5
        """
        if not text:
            return 0
        return len(TextUtils.WORD_PATTERN.findall(text))


class LanguageUtils:
    """Language code and name helpers used for prompts and validation."""

    # Languages offered to users, keyed by the name sent to the model
    SUPPORTED_LANGUAGES: List[Dict[str, str]] = [
        {"code": "Uzbek", "label": "O'zbek"},
        {"code": "English", "label": "Ingliz"},
        {"code": "Russian", "label": "Rus"},
        {"code": "Spanish", "label": "Ispan"},
        {"code": "French", "label": "Fransuz"},
        {"code": "German", "label": "Nemis"},
        {"code": "Turkish", "label": "Turk"},
        {"code": "Korean", "label": "Koreys"},
        {"code": "Japanese", "label": "Yapon"},
        {"code": "Chinese", "label": "Xitoy"},
    ]

    # Mapping from ISO 639-1 2-letter codes to language names for OpenAI
    ISO_TO_LANGUAGE_NAME: Dict[str, str] = {
        "uz": "Uzbek",
        "en": "English",
        "ru": "Russian",
        "es": "Spanish",
        "fr": "French",
        "de": "German",
        "tr": "Turkish",
        "ko": "Korean",
        "ja": "Japanese",
        "zh": "Chinese",
        "it": "Italian",
        "pt": "Portuguese",
        "ar": "Arabic",
        "he": "Hebrew",
        "kk": "Kazakh",
        "uk": "Ukrainian",
    }

    @staticmethod
    def iso_to_language_name(language: str) -> str:
        """
        Convert an ISO 639-1 code to a language name; names pass through.

        Example:
            >>> LanguageUtils.iso_to_language_name('uz')
            'Uzbek'
            >>> LanguageUtils.iso_to_language_name('Uzbek')
            'Uzbek'
        """
        if not language:
            return language
        return LanguageUtils.ISO_TO_LANGUAGE_NAME.get(language.lower(), language)

    @staticmethod
    def same_language(first: str, second: str) -> bool:
        """True when both values resolve to the same language name."""
        first_name = LanguageUtils.iso_to_language_name(first.strip())
        second_name = LanguageUtils.iso_to_language_name(second.strip())
        return first_name.lower() == second_name.lower()

    @staticmethod
    def file_suffix(language: str) -> str:
        """
        Short suffix used in translated file names.

        Example:
            >>> LanguageUtils.file_suffix('Uzbek')
            'uz'
            >>> LanguageUtils.file_suffix('Klingon')
            'klingon'
        """
        name = LanguageUtils.iso_to_language_name(language.strip())
        for code, known_name in LanguageUtils.ISO_TO_LANGUAGE_NAME.items():
            if known_name.lower() == name.lower():
                return code
        return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "translated"
