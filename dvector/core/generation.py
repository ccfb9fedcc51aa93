"""
Generation step - turns an instruction, a retrieved context block and a question into an answer.
"""

import re
from abc import ABC, abstractmethod
from typing import Dict, List

import httpx
import ollama

from .errors import GenerationUnavailable


class IGenerator(ABC):
    """Abstract interface for answer generation."""

    @abstractmethod
    async def generate(self, system_instruction: str, context: str, question: str) -> str:
        pass


def build_user_prompt(context: str, question: str) -> str:
    return f"Context:\n\n{context}\n\n---\n\nQuestion: {question}\n\nAnswer:"


class OllamaGenerator(IGenerator):
    """Generator backed by a local Ollama model."""

    def __init__(self, model_name: str, host: str = None, temperature: float = 0.3, client: ollama.AsyncClient = None):
        self.model_name = model_name
        self.temperature = temperature
        self.client = client or ollama.AsyncClient(host=host)

    def _build_messages(self, system_instruction: str, context: str, question: str) -> List[Dict[str, str]]:
        return [
            {'role': 'system', 'content': system_instruction},
            {'role': 'user', 'content': build_user_prompt(context, question)},
        ]

    async def generate(self, system_instruction: str, context: str, question: str) -> str:
        messages = self._build_messages(system_instruction, context, question)

        try:
            response = await self.client.chat(
                model=self.model_name,
                messages=messages,
                options={'temperature': self.temperature},
            )
        except ollama.ResponseError as e:
            raise GenerationUnavailable(f"Ollama model error: {e}") from e
        except (httpx.HTTPError, ConnectionError) as e:
            raise GenerationUnavailable(f"Ollama unreachable: {e}") from e

        content = response['message']['content']
        if not content:
            raise GenerationUnavailable(f"Ollama model {self.model_name} returned an empty answer")
        return content


class MockGenerator(IGenerator):
    """
    Extractive generator without external dependencies.
    Used for testing, development, and when Ollama is unavailable.

    Answers with the context sentence sharing the most words with the question,
    citing the document section it came from.
    """

    INSUFFICIENT = "The provided documents do not contain enough information to answer the question."

    def __init__(self, model_name: str = "mock-model"):
        self.model_name = model_name

    async def generate(self, system_instruction: str, context: str, question: str) -> str:
        question_words = set(re.findall(r"\w+", question.lower()))
        best_score, best_sentence, best_label = 0, None, None

        for section in context.split("\n---\n"):
            lines = section.strip().split("\n", 1)
            if len(lines) < 2:
                continue
            label, body = lines[0].rstrip(":"), lines[1]
            for sentence in re.split(r"(?<=[.!?])\s+", body):
                overlap = len(question_words & set(re.findall(r"\w+", sentence.lower())))
                if overlap > best_score:
                    best_score, best_sentence, best_label = overlap, sentence.strip(), label

        if best_sentence is None:
            return self.INSUFFICIENT
        return f"{best_sentence} [Source: {best_label}]"
