from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from projectagent.config import LLMConfig
from projectagent.similarity import (
    DisabledScorer,
    EmbeddingSimilarityScorer,
    LLMSimilarityScorer,
    SimilarityError,
    build_comparison_prompt,
    cosine_similarity,
    get_similarity_scorer,
    parse_similarity_response,
    truncate_body,
)


def _completion(content: str):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def test_parse_plain_json():
    assert parse_similarity_response('{"similar": true, "similarity": 0.91, "reasoning": "x"}') == 0.91


def test_parse_fenced_json():
    content = '```json\n{"similar": true, "similarity": 0.8}\n```'

    assert parse_similarity_response(content) == 0.8


def test_parse_clamps_score():
    assert parse_similarity_response('{"similarity": 1.7}') == 1.0
    assert parse_similarity_response('{"similarity": -2}') == 0.0


def test_parse_not_similar_without_score():
    assert parse_similarity_response('{"similar": false}') == 0.0


def test_parse_falls_back_to_regex():
    content = 'Sure! {"similar": true, "similarity": 0.75, "reasoning": "trailing'

    assert parse_similarity_response(content) == 0.75


@pytest.mark.parametrize("content", ["", "no json here", "[1, 2]", '{"reasoning": "?"}'])
def test_parse_failures(content):
    with pytest.raises(SimilarityError):
        parse_similarity_response(content)


def test_truncate_body():
    assert truncate_body(None) == ""
    assert truncate_body("  short  ") == "short"
    assert truncate_body("x" * 600) == "x" * 500 + "..."


def test_prompt_includes_both_issues():
    prompt = build_comparison_prompt("PR title", "", "Issue title", "Issue body")

    assert "Issue A: PR title" in prompt
    assert "(No description provided)" in prompt
    assert "Issue B: Issue title\nIssue body" in prompt


def test_llm_scorer_calls_litellm():
    mock_litellm = MagicMock()
    mock_litellm.completion.return_value = _completion('{"similar": true, "similarity": 0.96}')

    with patch("projectagent.similarity._get_litellm", return_value=mock_litellm):
        score = LLMSimilarityScorer(model="test-model").score("A", "a", "B", "b")

    assert score == 0.96
    kwargs = mock_litellm.completion.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["messages"][0]["role"] == "system"


def test_llm_scorer_wraps_provider_errors():
    mock_litellm = MagicMock()
    mock_litellm.completion.side_effect = RuntimeError("quota exceeded")

    with patch("projectagent.similarity._get_litellm", return_value=mock_litellm):
        with pytest.raises(SimilarityError, match="quota exceeded"):
            LLMSimilarityScorer().score("A", "", "B", "")


def test_cosine_similarity():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([0, 0], [1, 1]) == 0.0


def test_embedding_scorer_caches_embeddings():
    vectors = {"A\n\na": [1.0, 0.0], "B\n\nb": [1.0, 1.0], "C\n\nc": [0.0, 1.0]}
    mock_litellm = MagicMock()
    mock_litellm.embedding.side_effect = lambda model, input: SimpleNamespace(
        data=[{"embedding": vectors[input[0]]}]
    )

    with patch("projectagent.similarity._get_litellm", return_value=mock_litellm):
        scorer = EmbeddingSimilarityScorer(model="embed")
        first = scorer.score("A", "a", "B", "b")
        scorer.score("A", "a", "C", "c")

    assert first == pytest.approx(0.7071, abs=1e-3)
    assert mock_litellm.embedding.call_count == 3


def test_disabled_scorer_always_fails():
    with pytest.raises(SimilarityError):
        DisabledScorer().score("A", "", "B", "")


def test_get_similarity_scorer():
    assert isinstance(get_similarity_scorer(None), DisabledScorer)
    assert isinstance(get_similarity_scorer(LLMConfig(enabled=False)), DisabledScorer)
    assert isinstance(get_similarity_scorer(LLMConfig(scorer="embedding")), EmbeddingSimilarityScorer)

    scorer = get_similarity_scorer(LLMConfig(model="gpt-4o-mini", temperature=0.0))
    assert isinstance(scorer, LLMSimilarityScorer)
    assert scorer.model == "gpt-4o-mini"
    assert scorer.temperature == 0.0
