import json
import logging
import unittest

from attendance_engine.logging_utils import (
    JsonFormatter,
    LogContextFilter,
    bind_log_context,
    current_log_context,
    reset_log_context,
)


def _record(message: str, **extra: object) -> logging.LogRecord:
    record = logging.makeLogRecord({"name": "attendance_engine.monthly_stats", "msg": message, "levelno": logging.INFO})
    record.levelname = "INFO"
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class LogContextTests(unittest.TestCase):
    def test_bound_context_lands_on_json_records(self) -> None:
        token = bind_log_context(request_id="req-1", company_id="eyewind")
        try:
            record = _record("leave_type_unknown", leave_type="婚假")
            LogContextFilter().filter(record)
            payload = json.loads(JsonFormatter().format(record))
        finally:
            reset_log_context(token)

        self.assertEqual(payload["message"], "leave_type_unknown")
        self.assertEqual(payload["request_id"], "req-1")
        self.assertEqual(payload["company_id"], "eyewind")
        self.assertEqual(payload["leave_type"], "婚假")
        self.assertNotIn("msg", payload)
        self.assertNotIn("levelno", payload)

    def test_explicit_extra_wins_over_bound_context(self) -> None:
        token = bind_log_context(company_id="eyewind", user_id="u1")
        try:
            record = _record("employee_evaluation_failed", user_id="u2")
            LogContextFilter().filter(record)
        finally:
            reset_log_context(token)

        self.assertEqual(record.user_id, "u2")
        self.assertEqual(record.company_id, "eyewind")

    def test_reset_restores_outer_context(self) -> None:
        outer = bind_log_context(request_id="req-1")
        inner = bind_log_context(company_id="hydodo", user_id=None)
        self.assertEqual(current_log_context(), {"request_id": "req-1", "company_id": "hydodo"})

        reset_log_context(inner)
        self.assertEqual(current_log_context(), {"request_id": "req-1"})
        reset_log_context(outer)
        self.assertEqual(current_log_context(), {})

    def test_chinese_labels_are_not_escaped(self) -> None:
        output = JsonFormatter().format(_record("leave_display", label="病假<=24小时 16小时"))

        self.assertIn("病假<=24小时 16小时", output)


if __name__ == "__main__":
    unittest.main()
