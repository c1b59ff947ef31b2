from __future__ import annotations

import pytest

from conftest import CountingPacer, TitleScorer, make_issue
from projectagent.matching import select_best_match
from projectagent.pacing import Deadline, DeadlineExceeded


def test_selects_highest_score_above_threshold():
    candidates = [make_issue(1, "A"), make_issue(2, "B"), make_issue(3, "C")]
    scorer = TitleScorer({"A": 0.96, "B": 0.99, "C": 0.5})

    issue, score = select_best_match("PR", "", candidates, 0.95, scorer)

    assert issue.number == 2
    assert score == 0.99


def test_no_match_below_threshold():
    candidates = [make_issue(1, "A"), make_issue(2, "B")]
    scorer = TitleScorer({"A": 0.94, "B": 0.9})

    match = select_best_match("PR", "", candidates, 0.95, scorer)

    assert not match.found
    assert match.issue is None
    assert match.compared == 2


def test_threshold_is_inclusive():
    match = select_best_match("PR", "", [make_issue(1, "A")], 0.95, TitleScorer({"A": 0.95}))

    assert match.issue.number == 1


def test_ties_go_to_first_candidate():
    candidates = [make_issue(1, "A"), make_issue(2, "B")]
    scorer = TitleScorer({"A": 0.97, "B": 0.97})

    match = select_best_match("PR", "", candidates, 0.95, scorer)

    assert match.issue.number == 1


def test_tie_above_threshold_goes_to_earlier_candidate():
    candidates = [make_issue(1, "A"), make_issue(2, "B"), make_issue(3, "C")]
    scorer = TitleScorer({"A": 0.80, "B": 0.91, "C": 0.91})

    match = select_best_match("PR", "", candidates, 0.85, scorer)

    assert match.issue.number == 2
    assert match.score == 0.91


def test_failed_comparisons_are_skipped():
    candidates = [make_issue(1, "A"), make_issue(2, "B")]
    scorer = TitleScorer({"B": 0.98}, failing={"A"})

    match = select_best_match("PR", "", candidates, 0.95, scorer)

    assert match.issue.number == 2
    assert match.skipped == 1
    assert match.compared == 1


def test_empty_candidates():
    scorer = TitleScorer()

    match = select_best_match("PR", "", [], 0.95, scorer)

    assert match.issue is None
    assert scorer.calls == []


def test_pacer_called_per_comparison():
    pacer = CountingPacer()
    candidates = [make_issue(n, f"T{n}") for n in range(1, 4)]

    select_best_match("PR", "", candidates, 0.95, TitleScorer(), pacer=pacer)

    assert pacer.waits == 3


def test_expired_deadline_stops_scoring():
    scorer = TitleScorer()
    deadline = Deadline(0)

    with pytest.raises(DeadlineExceeded):
        select_best_match("PR", "", [make_issue(1, "A")], 0.95, scorer, deadline=deadline)

    assert scorer.calls == []
