"""
Shared pytest fixtures: offline token counters and fake structure models.
"""

import asyncio

import pytest

from structure_detector import LlmStructure, StructureDetector
from token_counter import TokenCounter


class WordEncoder:
    """One token per whitespace-separated word."""

    def encode(self, text):
        return text.split()


def _unavailable(name):
    raise RuntimeError(f"encoding {name} unavailable offline")


class FakeStructureLlm:
    """Stands in for a structured-output chat model."""

    def __init__(self, response=None, error=None, delay=0.0):
        self.response = response
        self.error = error
        self.delay = delay
        self.calls = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def word_counter():
    counter = TokenCounter(loader=lambda name: WordEncoder())
    counter.init_tokenizer_sync()
    return counter


@pytest.fixture
def heuristic_counter():
    counter = TokenCounter(loader=_unavailable)
    counter.init_tokenizer_sync()
    return counter


@pytest.fixture
def failing_llm():
    return FakeStructureLlm(error=ConnectionError("model unreachable"))


@pytest.fixture
def offline_detector(failing_llm):
    return StructureDetector(llm=failing_llm)


@pytest.fixture
def empty_llm_structure():
    return LlmStructure(sections=[])
