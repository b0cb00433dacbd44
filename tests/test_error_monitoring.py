from __future__ import annotations

import logging

from src.utils.error_monitoring import (
    CorroborationFailure,
    ErrorHandler,
    ErrorSeverity,
    PipelineFailure,
    SourceUnavailableError,
)


def test_severity_follows_service_criticality():
    handler = ErrorHandler()
    assert handler.classify_severity(PipelineFailure("boom"), "pipeline") is ErrorSeverity.CRITICAL
    assert handler.classify_severity(CorroborationFailure("x"), "date_consensus") is ErrorSeverity.INFO
    assert handler.classify_severity(SourceUnavailableError("HTTP 503"), "wikipedia_feed") is ErrorSeverity.MEDIUM
    assert handler.classify_severity(SourceUnavailableError("HTTP 503"), "candidates") is ErrorSeverity.LOW
    assert handler.classify_severity(RuntimeError("HTTP 429"), "wikipedia_feed") is ErrorSeverity.MEDIUM
    assert handler.classify_severity(ValueError("bad"), "pipeline") is ErrorSeverity.HIGH


def test_recovery_suggestions():
    handler = ErrorHandler()
    assert "FETCH_TIMEOUT" in handler.hint_for(RuntimeError("request timed out"))
    assert "MAX_CONCURRENCY" in handler.hint_for(RuntimeError("rate limit hit"))
    assert handler.hint_for(SourceUnavailableError("HTTP 503")) is not None
    assert handler.hint_for(KeyError("x")) is None


def test_statistics_and_repeated_patterns(caplog):
    handler = ErrorHandler()
    with caplog.at_level(logging.DEBUG, logger="src.utils.error_monitoring"):
        for _ in range(3):
            handler.handle_error(CorroborationFailure("'Singapore': mismatch"), "date_consensus", "verify")
        handler.handle_error(SourceUnavailableError("HTTP 503"), "wikipedia_feed", "wikipedia_birth")

    stats = handler.summary()
    assert stats["total_errors"] == 4
    assert stats["error_types"] == {"CorroborationFailure": 3, "SourceUnavailableError": 1}
    assert stats["services"] == {"date_consensus": 3, "wikipedia_feed": 1}
    assert handler.repeated_failures() == [
        "Repeated pattern: CorroborationFailure in date_consensus occurred 3 times in this run"
    ]
    levels = [r.levelno for r in caplog.records]
    assert levels.count(logging.DEBUG) == 3
    assert levels.count(logging.WARNING) == 1
