#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Translator module for the EPUB translator.
Handles communication with the Moonshot chat completions API for English to
Chinese translation. Retries, backoff and rate limiting live here; the chapter
pipeline only sees a fallible translate_chunk(text, style) call.
"""

import asyncio
import enum
import json
import logging
import re
import threading
import time
from dataclasses import dataclass

# Import for synchronous implementation
import requests

# Imports for asynchronous implementation
import aiohttp

from epub_zh_translator.exceptions import TranslationAPIError

logger = logging.getLogger("epub_zh_translator.translator")


class TranslationStyle(enum.Enum):
    FICTION = "fiction"
    SCIENCE = "science"
    GENERAL = "general"

    @classmethod
    def parse(cls, value):
        """Return the style for a name, GENERAL for anything unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning(f"Unknown translation style '{value}', using general")
            return cls.GENERAL


@dataclass(frozen=True)
class StylePrompt:
    """Prompt pair sent with every chunk of a given style."""

    style: TranslationStyle
    system_prompt: str
    user_template: str

    def build_messages(self, text):
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": self.user_template.format(text=text)},
        ]


STYLE_PROMPTS = {
    TranslationStyle.FICTION: StylePrompt(
        TranslationStyle.FICTION,
        "你是一位专业的文学翻译专家，擅长翻译英文小说。请将下面的英文内容翻译成优美流畅的中文，"
        "保持原文的文学性和情感色彩。注意保留人名、地名等专有名词的音译。"
        "保留原文的段落划分，段落之间用空行分隔，只输出翻译结果。",
        "请翻译以下内容：\n\n{text}",
    ),
    TranslationStyle.SCIENCE: StylePrompt(
        TranslationStyle.SCIENCE,
        "你是一位专业的科技文献翻译专家。请将下面的英文内容准确翻译成中文，确保专业术语的准确性，"
        "保持学术文献的严谨性。保留原文的段落划分，段落之间用空行分隔，只输出翻译结果。",
        "请翻译以下内容：\n\n{text}",
    ),
    TranslationStyle.GENERAL: StylePrompt(
        TranslationStyle.GENERAL,
        "你是一位专业的翻译专家。请将下面的英文内容翻译成准确、流畅的中文，保持原文的语义和风格。"
        "保留原文的段落划分，段落之间用空行分隔，只输出翻译结果。",
        "请翻译以下内容：\n\n{text}",
    ),
}


def get_style_prompt(style):
    """Look up the prompt record for a style name or TranslationStyle."""
    return STYLE_PROMPTS[TranslationStyle.parse(style)]


# Leaked instructions the model sometimes prepends
LEAKED_PREFIX_PATTERNS = [
    re.compile(r'^(注意|说明|提示|翻译)[：:].*$', re.MULTILINE),
    re.compile(r'^[\s\S]*?开始翻译[：:]\s*'),
    re.compile(r'^(Translation|Translated text|Here\'s the translation)\s*:\s*', re.IGNORECASE),
]

CJK_CHAR = re.compile(r'[\u4e00-\u9fff]')
LATIN_LETTER = re.compile(r'[A-Za-z]')


def clean_llm_output(text):
    """Strip leaked instructions and echoed English lines from model output.

    A line is treated as echoed source text when it contains Latin letters
    and no more than 20% of its characters are CJK. Lines without letters
    (numbers, ornaments, blank lines) are kept.
    """
    if not text:
        return ""

    cleaned = text
    for pattern in LEAKED_PREFIX_PATTERNS:
        cleaned = pattern.sub('', cleaned)
    cleaned = cleaned.strip()

    kept = []
    for line in cleaned.split('\n'):
        stripped = line.strip()
        if stripped and LATIN_LETTER.search(stripped):
            cjk_ratio = len(CJK_CHAR.findall(stripped)) / len(stripped)
            if cjk_ratio <= 0.2:
                logger.debug(f"Dropping untranslated line from model output: {stripped[:60]}")
                continue
        kept.append(line)

    return '\n'.join(kept).strip()


class MoonshotTranslator:
    """Translator using the Moonshot chat completions API."""

    DEFAULT_ENDPOINT = "https://api.moonshot.cn/v1/chat/completions"

    def __init__(self, api_key, model="moonshot-v1-8k", endpoint=None, max_retries=3,
                 timeout=60, rate_limit=20, temperature=0.3, max_tokens=4000):
        """Initialize the Moonshot translator.

        Args:
            api_key: Moonshot API key
            model: Model name
            endpoint: Chat completions URL (default: DEFAULT_ENDPOINT)
            max_retries: Maximum number of retries for API calls
            timeout: Timeout for API calls in seconds
            rate_limit: Maximum requests per minute
            temperature: Sampling temperature
            max_tokens: Maximum tokens in a response
        """
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint or self.DEFAULT_ENDPOINT
        self.max_retries = max_retries
        self.timeout = timeout
        self.rate_limit = rate_limit
        self.rate_limit_interval = 60 / rate_limit if rate_limit else 0
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.last_request_time = 0
        self.lock = threading.Lock()  # Chapters translate on several threads

        if not api_key:
            logger.warning("No API key provided for Moonshot API")

        logger.info(f"Initialized Moonshot translator: model {model}, en → zh-CN")

    def translate_chunk(self, text, style=TranslationStyle.GENERAL):
        """Translate one chunk of text.

        Args:
            text: Text to translate
            style: TranslationStyle or style name

        Returns:
            Cleaned translation

        Raises:
            TranslationAPIError: If the API fails after all retries
        """
        if not text or not text.strip():
            return text

        prompt = get_style_prompt(style)
        response = self._make_api_request(prompt.build_messages(text))
        return self._extract_translation(response)

    def _build_payload(self, messages):
        return {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    def _headers(self):
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _extract_translation(self, response):
        try:
            translation = response["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            logger.debug(f"Response: {response}")
            raise TranslationAPIError(f"Unexpected API response: {e}") from e

        cleaned = clean_llm_output(translation)
        if not cleaned:
            raise TranslationAPIError("API returned an empty translation")
        return cleaned

    def _wait_for_rate_limit(self):
        with self.lock:
            elapsed = time.time() - self.last_request_time
            if elapsed < self.rate_limit_interval:
                sleep_time = self.rate_limit_interval - elapsed
                logger.debug(f"Rate limiting: sleeping for {sleep_time:.2f} seconds")
                time.sleep(sleep_time)
            self.last_request_time = time.time()

    def _make_api_request(self, messages):
        """Make request to the Moonshot API with retries.

        Args:
            messages: List of message dictionaries

        Returns:
            Parsed JSON response
        """
        data = self._build_payload(messages)

        for attempt in range(self.max_retries + 1):
            self._wait_for_rate_limit()
            try:
                response = requests.post(
                    self.endpoint,
                    headers=self._headers(),
                    data=json.dumps(data),
                    timeout=self.timeout
                )
                if response.status_code == 429 and attempt < self.max_retries:
                    wait_time = (attempt + 1) * 2
                    logger.warning(f"Rate limited by API. Retrying in {wait_time} seconds... ({attempt+1}/{self.max_retries})")
                    time.sleep(wait_time)
                    continue
                response.raise_for_status()
                return response.json()

            except requests.exceptions.RequestException as e:
                if attempt < self.max_retries:
                    wait_time = 2 ** attempt  # Exponential backoff
                    logger.warning(f"API request failed. Retrying in {wait_time} seconds... ({attempt+1}/{self.max_retries})")
                    logger.debug(f"Error details: {str(e)}")
                    time.sleep(wait_time)
                else:
                    logger.error(f"API request failed after {self.max_retries} retries: {str(e)}")
                    status = getattr(getattr(e, "response", None), "status_code", None)
                    raise TranslationAPIError(str(e), status_code=status) from e
            except ValueError as e:
                raise TranslationAPIError(f"API returned invalid JSON: {e}") from e

        raise TranslationAPIError("API request kept hitting the rate limit", status_code=429)

    #
    # Asynchronous implementation
    #

    async def _wait_for_rate_limit_async(self):
        # Reserve the next slot under the lock, sleep outside it
        with self.lock:
            now = time.time()
            scheduled = max(now, self.last_request_time + self.rate_limit_interval)
            self.last_request_time = scheduled
        if scheduled > now:
            logger.debug(f"Rate limiting: sleeping for {scheduled - now:.2f} seconds")
            await asyncio.sleep(scheduled - now)

    async def _make_api_request_async(self, session, semaphore, messages):
        data = self._build_payload(messages)
        async with semaphore:
            for attempt in range(self.max_retries + 1):
                await self._wait_for_rate_limit_async()
                try:
                    async with session.post(self.endpoint, json=data) as response:
                        if response.status == 429 and attempt < self.max_retries:
                            wait_time = (attempt + 1) * 2
                            logger.warning(f"Rate limited by API. Waiting {wait_time} seconds...")
                            await asyncio.sleep(wait_time)
                            continue
                        response.raise_for_status()
                        return await response.json()

                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    if attempt < self.max_retries:
                        wait_time = 2 ** attempt  # Exponential backoff
                        logger.warning(f"API request failed. Retrying in {wait_time} seconds... ({attempt+1}/{self.max_retries})")
                        await asyncio.sleep(wait_time)
                    else:
                        logger.error(f"API request failed after {self.max_retries} retries: {str(e)}")
                        raise TranslationAPIError(str(e)) from e

        raise TranslationAPIError("API request kept hitting the rate limit", status_code=429)

    async def _translate_one_async(self, session, semaphore, text, prompt):
        if not text or not text.strip():
            return text
        response = await self._make_api_request_async(session, semaphore, prompt.build_messages(text))
        return self._extract_translation(response)

    async def translate_chunks_async(self, texts, style=TranslationStyle.GENERAL, concurrency=3):
        """Translate several chunks concurrently.

        Args:
            texts: Chunk texts
            style: TranslationStyle or style name
            concurrency: Maximum requests in flight

        Returns:
            Translations in input order; None where a chunk failed
        """
        prompt = get_style_prompt(style)
        semaphore = asyncio.Semaphore(concurrency)
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers=self._headers()
        ) as session:
            results = await asyncio.gather(
                *(self._translate_one_async(session, semaphore, text, prompt) for text in texts),
                return_exceptions=True
            )

        translations = []
        for index, result in enumerate(results):
            if isinstance(result, Exception):
                logger.error(f"Chunk {index} failed: {result}")
                translations.append(None)
            else:
                translations.append(result)
        return translations
