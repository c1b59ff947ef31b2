from __future__ import annotations

from unittest.mock import Mock

from conftest import make_issue
from projectagent.sinks import BoardMutationSink, DryRunSink, build_mutation_sink


def test_board_sink_delegates_to_client():
    client = Mock()
    sink = BoardMutationSink(client)
    issue = make_issue(3)

    assert sink.set_status(issue, "PR Review") is True
    assert sink.link_pull_request(issue, "acme", "app", 7) is True
    assert sink.add_comment(issue, "hello") is True
    assert sink.add_label(issue, "possible duplicate") is True

    client.set_status.assert_called_once_with(issue, "PR Review")
    client.link_pr_to_issue.assert_called_once_with(issue, "acme", "app", 7)
    client.add_comment.assert_called_once_with(issue, "hello")
    client.add_label.assert_called_once_with(issue, "possible duplicate")


def test_dry_run_sink_records_and_reports_nothing_applied():
    sink = DryRunSink()
    issue = make_issue(3)

    assert sink.set_status(issue, "PR Review") is False
    assert sink.link_pull_request(issue, "acme", "app", 7) is False

    assert sink.actions == [
        "move issue #3 (storacha/project) to PR Review",
        "link PR acme/app#7 to issue #3",
    ]


def test_build_mutation_sink():
    client = Mock()

    assert build_mutation_sink(client, dry_run=True).dry_run is True
    sink = build_mutation_sink(client)
    assert isinstance(sink, BoardMutationSink)
    assert sink.client is client
