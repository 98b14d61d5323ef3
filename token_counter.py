"""
Token Counter
Counts subword tokens for chunk sizing, with a character-based estimate
until the tokenizer has been loaded.
"""

import asyncio
import logging
import math
import threading
from typing import Callable, Optional

import tiktoken

import config


logger = logging.getLogger(__name__)


def _load_tiktoken_encoding(encoding_name: str):
    """Load a tiktoken encoding by name, or by model name as a fallback."""
    try:
        return tiktoken.get_encoding(encoding_name)
    except ValueError:
        return tiktoken.encoding_for_model(encoding_name)


class TokenCounter:
    """
    Once-initialised tokenizer handle.

    Before initialisation, counts are estimated at ~4.5 characters per token,
    which overestimates legal English slightly so chunk-size decisions err
    toward splitting. After `init_tokenizer()` every count is exact.
    """

    def __init__(self,
                 encoding_name: str = config.TOKENIZER_ENCODING,
                 loader: Optional[Callable[[str], object]] = None,
                 chars_per_token: float = config.CHARS_PER_TOKEN):
        """
        Initialize the counter without loading anything.

        Args:
            encoding_name: tiktoken encoding (or model) name
            loader: Callable returning an object with `encode(text)`;
                defaults to tiktoken
            chars_per_token: Ratio used by the estimate before loading
        """
        self.encoding_name = encoding_name
        self.chars_per_token = chars_per_token
        self._loader = loader or _load_tiktoken_encoding
        self._encoder = None
        self._load_attempted = False
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._encoder is not None

    def init_tokenizer_sync(self) -> bool:
        """
        Load the tokenizer once. Concurrent callers block on the same lock,
        so the encoding is never loaded twice.

        Returns:
            True if an exact tokenizer is available
        """
        if self._load_attempted:
            return self._encoder is not None

        with self._lock:
            if not self._load_attempted:
                try:
                    self._encoder = self._loader(self.encoding_name)
                except Exception as e:
                    logger.warning(
                        f"Could not initialize tokenizer '{self.encoding_name}': {e}. "
                        f"Using character estimate."
                    )
                    self._encoder = None
                self._load_attempted = True

        return self._encoder is not None

    async def init_tokenizer(self) -> bool:
        """Pre-warm the tokenizer without blocking the event loop."""
        if self._load_attempted:
            return self._encoder is not None
        return await asyncio.to_thread(self.init_tokenizer_sync)

    def reset(self):
        """Forget the loaded encoder so the next init retries the load."""
        with self._lock:
            self._encoder = None
            self._load_attempted = False

    def estimate(self, text: str) -> int:
        return math.ceil(len(text) / self.chars_per_token)

    def count_sync(self, text: str) -> int:
        """Count tokens: exact if the tokenizer is loaded, estimated otherwise."""
        if not text:
            return 0
        encoder = self._encoder
        if encoder is None:
            return self.estimate(text)
        return len(encoder.encode(text))

    async def count_exact(self, text: str) -> int:
        """Count tokens after making sure the tokenizer is loaded."""
        await self.init_tokenizer()
        return self.count_sync(text)

    def truncate_to_tokens(self, text: str, max_tokens: int) -> str:
        """
        Truncate text to about `max_tokens` tokens on word boundaries.
        Always returns at least the first word.
        """
        if self.count_sync(text) <= max_tokens:
            return text

        words = text.split()
        result = ""
        for word in words:
            candidate = f"{result} {word}" if result else word
            if self.count_sync(candidate) > max_tokens:
                break
            result = candidate

        return result or (words[0] if words else "")


_default_counter: Optional[TokenCounter] = None
_default_lock = threading.Lock()


def get_token_counter() -> TokenCounter:
    """Get or create the process-wide token counter."""
    global _default_counter
    if _default_counter is None:
        with _default_lock:
            if _default_counter is None:
                _default_counter = TokenCounter()
    return _default_counter


def count_tokens(text: str) -> int:
    """Count tokens with the process-wide counter."""
    return get_token_counter().count_sync(text)
