import json

from receipt_service.utils import logging_utils
from receipt_service.utils.logging_utils import log_pipeline_event, log_transition_event


def _events(log_dir):
    lines = (log_dir / logging_utils.LOG_FILE_NAME).read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_sensitive_keys_are_not_written(isolate_pipeline_log):
    log_pipeline_event({"event_type": "debug", "raw_text": "secret receipt", "API_KEY": "sk", "size": 12})

    [event] = _events(isolate_pipeline_log)
    assert event["size"] == 12
    assert "raw_text" not in event
    assert "API_KEY" not in event
    assert "timestamp" in event


def test_transition_events_append(isolate_pipeline_log):
    log_transition_event("abc", "running_local_ocr", previous="receiving_upload")
    log_transition_event("abc", "done", previous="enriching_with_llm")

    events = _events(isolate_pipeline_log)
    assert [e["state"] for e in events] == ["running_local_ocr", "done"]
    assert all(e["request_id"] == "abc" for e in events)


def test_pipeline_run_writes_transitions(isolate_pipeline_log, make_pipeline, receipt_image):
    make_pipeline().run(receipt_image)

    states = [e["state"] for e in _events(isolate_pipeline_log)]
    assert states == ["running_local_ocr", "running_cloud_ocr", "ocr_unavailable"]
