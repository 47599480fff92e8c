#!/usr/bin/env python3
"""
Tests for structured event logging.
"""
import json
import logging

from infra.logging import log_error, log_event


def _records(caplog):
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == "runwaytwin.events"]


def test_event_gets_request_id(caplog):
    with caplog.at_level(logging.INFO, logger="runwaytwin.events"):
        log_event("look_job_started", job_id="job-1")
        log_event("look_job_queued", request_id="look-1")

    first, second = _records(caplog)
    assert first["event"] == "look_job_started"
    assert first["request_id"]
    assert first["job_id"] == "job-1"
    assert second["request_id"] == "look-1"


def test_error_redacts_credentials_and_trims_messages(caplog):
    with caplog.at_level(logging.INFO, logger="runwaytwin.events"):
        log_error("adapter_search_failed", retailer="awin", api_token="secret-value", message="x" * 600)

    (rec,) = _records(caplog)
    assert rec["event"] == "error"
    assert rec["error"] == "adapter_search_failed"
    assert rec["api_token"] == "***"
    assert rec["message"].endswith("...")
    assert len(rec["message"]) == 503
    assert caplog.records[-1].levelno == logging.ERROR
