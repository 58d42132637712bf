"""Audit event tests.

Verifies audit log payloads:
- always include correlation_id
- never include obvious token markers
- file sink rotation is best-effort and safe
"""

from __future__ import annotations

import json

from issue_triage.audit import AuditLogger, build_event, new_correlation_id


def test_audit_event_emits_correlation_id_and_no_tokens(capsys) -> None:
    logger = AuditLogger(sink_path=None)

    ev = build_event(
        correlation_id="abc123",
        operation="getGithubIssue",
        target="octo/repo#42",
        outcome="succeeded",
        duration_ms=12,
    )

    logger.write_event(ev)
    captured = capsys.readouterr()

    payload = json.loads(captured.err.strip())
    assert payload["correlation_id"] == "abc123"
    assert payload["operation"] == "getGithubIssue"
    assert payload["target"] == "octo/repo#42"
    assert payload["duration_ms"] == 12
    assert "reason" not in payload

    assert "ghp_" not in captured.err
    assert "Bearer " not in captured.err


def test_audit_file_sink_rotates(tmp_path) -> None:
    sink = tmp_path / "audit.jsonl"
    logger = AuditLogger(sink_path=sink, max_bytes=80, max_backups=2)

    for i in range(10):
        logger.write_event(
            build_event(
                correlation_id=f"c{i}",
                operation="setIssueStatus",
                target="octo/repo#1",
                outcome="denied",
                reason="Cannot set status to Done for non-completed issues",
            )
        )

    assert sink.exists()
    assert (tmp_path / "audit.jsonl.1").exists()
    assert not (tmp_path / "audit.jsonl.3").exists()


def test_correlation_ids_are_unique() -> None:
    assert len({new_correlation_id() for _ in range(50)}) == 50
