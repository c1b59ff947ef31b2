"""
Semantic similarity scoring for project-agent using LiteLLM.

Two scorers are available:
- LLMSimilarityScorer: asks a chat model to judge whether two issues
  describe the same problem and report a 0-1 similarity score
- EmbeddingSimilarityScorer: cosine similarity of text embeddings

Both raise SimilarityError on any failure so callers can skip the
comparison instead of aborting.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

import numpy as np

from .config import LLMConfig

logger = logging.getLogger(__name__)

# Suppress LiteLLM's verbose logging
logging.getLogger("LiteLLM").setLevel(logging.WARNING)

# Bodies are truncated to keep prompt costs predictable
MAX_BODY_CHARS = 500

# Maximum content length for embedding
MAX_EMBED_CHARS = 8000

SIMILARITY_SYSTEM_PROMPT = """\
You are an expert at analyzing GitHub issues and determining if they are duplicates or highly similar.

When comparing two issues, consider:
1. The core problem or feature being described
2. The technical concepts involved
3. The user's goal or desired outcome
4. Similar error messages or symptoms

Respond ONLY with valid JSON in this exact format:
{
    "similar": true | false,
    "similarity": 0.0-1.0,
    "reasoning": "Brief explanation of why they are or aren't similar"
}

Be strict - only mark as similar if they're truly about the same issue or feature.
"""

_SCORE_PATTERN = re.compile(r'"similarity"\s*:\s*([0-9]*\.?[0-9]+)')


class SimilarityError(Exception):
    """A single similarity comparison could not be completed."""


class SimilarityScorer(Protocol):
    def score(self, title_a: str, body_a: str, title_b: str, body_b: str) -> float:
        ...


def truncate_body(body: str | None, limit: int = MAX_BODY_CHARS) -> str:
    """Trim whitespace and cap the body length."""
    body = (body or "").strip()
    if len(body) > limit:
        return body[:limit] + "..."
    return body


def build_comparison_prompt(title_a: str, body_a: str, title_b: str, body_b: str) -> str:
    """Build the user prompt comparing two issues."""
    return f"""\
Compare these two GitHub issues and determine if they are duplicates or highly similar:

Issue A: {title_a}
{truncate_body(body_a) or "(No description provided)"}

Issue B: {title_b}
{truncate_body(body_b) or "(No description provided)"}

Are these issues duplicates or highly similar? Respond in JSON format.
"""


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def parse_similarity_response(content: str) -> float:
    """
    Extract a similarity score from a model response.

    Accepts bare JSON or JSON inside a code fence. A response that marks
    the issues as not similar without giving a score counts as 0.0.

    Raises:
        SimilarityError: If no score can be recovered
    """
    if not content:
        raise SimilarityError("Empty response from model")

    # Parse JSON response
    if "```json" in content:
        content = content.split("```json")[1].split("```")[0]
    elif "```" in content:
        content = content.split("```")[1].split("```")[0]

    try:
        data = json.loads(content.strip())
    except json.JSONDecodeError:
        match = _SCORE_PATTERN.search(content)
        if match:
            return _clamp(float(match.group(1)))
        raise SimilarityError(f"Unparseable similarity response: {content[:200]!r}")

    if not isinstance(data, dict):
        raise SimilarityError(f"Unexpected similarity response: {data!r}")

    if "similarity" in data:
        try:
            return _clamp(float(data["similarity"]))
        except (TypeError, ValueError):
            raise SimilarityError(f"Invalid similarity value: {data['similarity']!r}")

    if data.get("similar") is False:
        return 0.0

    raise SimilarityError("Response has no similarity score")


def _get_litellm():
    """Lazy import LiteLLM."""
    try:
        import litellm
    except ImportError:
        raise ImportError(
            "LiteLLM is required for similarity scoring. "
            "Install with: pip install litellm"
        )
    return litellm


class LLMSimilarityScorer:
    """LiteLLM chat model acting as a duplicate judge."""

    def __init__(
        self,
        model: str = "gemini/gemini-2.0-flash",
        temperature: float = 0.1,  # Low for consistent results
        max_tokens: int = 500,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def score(self, title_a: str, body_a: str, title_b: str, body_b: str) -> float:
        litellm = _get_litellm()
        try:
            response = litellm.completion(
                model=self.model,
                messages=[
                    {"role": "system", "content": SIMILARITY_SYSTEM_PROMPT},
                    {"role": "user", "content": build_comparison_prompt(title_a, body_a, title_b, body_b)},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            content = response.choices[0].message.content
        except Exception as e:
            raise SimilarityError(f"LLM comparison failed: {e}") from e

        return parse_similarity_response(content or "")


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Compute cosine similarity between two vectors."""
    a_arr = np.array(a, dtype=float)
    b_arr = np.array(b, dtype=float)
    norm = np.linalg.norm(a_arr) * np.linalg.norm(b_arr)
    if norm == 0:
        return 0.0
    return float(np.dot(a_arr, b_arr) / norm)


class EmbeddingSimilarityScorer:
    """Cosine similarity between LiteLLM embeddings of the two texts."""

    def __init__(self, model: str = "text-embedding-3-small"):
        self.model = model
        # In-memory only; the PR side is embedded once per run
        self._cache: dict[str, list[float]] = {}

    def _embed(self, text: str) -> list[float]:
        text = text[:MAX_EMBED_CHARS]
        if text in self._cache:
            return self._cache[text]

        litellm = _get_litellm()
        try:
            response = litellm.embedding(model=self.model, input=[text])
            embedding: Any = response.data[0]["embedding"]
        except Exception as e:
            raise SimilarityError(f"Embedding failed: {e}") from e

        self._cache[text] = embedding
        return embedding

    def score(self, title_a: str, body_a: str, title_b: str, body_b: str) -> float:
        a = self._embed(f"{title_a}\n\n{body_a or ''}")
        b = self._embed(f"{title_b}\n\n{body_b or ''}")
        return _clamp(cosine_similarity(a, b))


class DisabledScorer:
    """Scorer used when LLM features are turned off; every comparison is skipped."""

    def score(self, title_a: str, body_a: str, title_b: str, body_b: str) -> float:
        raise SimilarityError("Similarity scoring is disabled")


def get_similarity_scorer(config: LLMConfig | None = None) -> SimilarityScorer:
    """Get the configured similarity scorer."""
    if config is None or not config.enabled:
        return DisabledScorer()

    if config.scorer == "embedding":
        return EmbeddingSimilarityScorer(model=config.embedding_model)

    return LLMSimilarityScorer(
        model=config.model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
    )
