from __future__ import annotations

import json
import logging

from oci_policy_audit.logging import JsonFormatter, PlainFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("oci_policy_audit.cli", logging.WARNING, __file__, 1, "Listing failed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_plain_formatter_includes_step_and_compartment() -> None:
    text = PlainFormatter().format(_record(step="aggregation", phase="error", compartment_id="ocid1.c", duration_ms=12))

    assert "WARNING oci_policy_audit.cli: [aggregation:error] Listing failed" in text
    assert "(compartment_id=ocid1.c)" in text
    assert text.endswith("(duration_ms=12)")


def test_json_formatter_keeps_safe_extras() -> None:
    payload = json.loads(JsonFormatter().format(_record(compartment_id="ocid1.c", failed=["a", "b"], obj=object())))

    assert payload["level"] == "WARNING"
    assert payload["message"] == "Listing failed"
    assert payload["compartment_id"] == "ocid1.c"
    assert payload["failed"] == ["a", "b"]
    assert "obj" not in payload
    assert "lineno" not in payload
