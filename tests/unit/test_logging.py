import logging

from app.core.logging import ContextFilter, RedactingFilter, mask_email, redact, request_id_ctx


def make_record(level, msg, *args):
    return logging.LogRecord("test", level, __file__, 1, msg, args, None)


def test_mask_email():
    assert mask_email("jean.dupont@example.com") == "j***@example.com"
    assert mask_email(None) == "-"
    assert mask_email("not-an-email") == "-"


def test_redact():
    assert redact("client jean@example.com a payé") == "client j***@example.com a payé"
    assert redact("Authorization: Bearer abc.def-ghi") == "Authorization: Bearer ***"
    assert redact("key sk_live_51Habc") == "key sk_live_***"
    assert redact("secret pi_3Nabc_secret_xyz") == "secret pi_3Nabc_secret_***"
    assert redact("password=hunter2 ok") == "password=*** ok"


def test_redacting_filter_masks_info_records():
    record = make_record(logging.INFO, "Email captured: %s", "jean@example.com")

    assert RedactingFilter().filter(record)
    assert record.getMessage() == "Email captured: j***@example.com"


def test_redacting_filter_leaves_debug_records():
    record = make_record(logging.DEBUG, "Email captured: %s", "jean@example.com")

    RedactingFilter().filter(record)
    assert record.getMessage() == "Email captured: jean@example.com"


def test_context_filter_adds_request_id():
    record = make_record(logging.INFO, "hello")
    ContextFilter().filter(record)
    assert record.request_id == "-"

    token = request_id_ctx.set("req-42")
    try:
        record = make_record(logging.INFO, "hello")
        ContextFilter().filter(record)
        assert record.request_id == "req-42"
    finally:
        request_id_ctx.reset(token)
