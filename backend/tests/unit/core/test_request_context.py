# backend/tests/unit/core/test_request_context.py
import logging

from motoserve.core.request_context import (
    NO_REQUEST_ID,
    RequestIdFilter,
    attach_request_id_filter,
    get_request_id,
    reset_request_id,
    set_request_id,
)


def _record() -> logging.LogRecord:
    return logging.LogRecord("motoserve.test", logging.INFO, __file__, 1, "hello", None, None)


class TestRequestIdBinding:
    def test_bound_id_is_visible_until_reset(self):
        token = set_request_id("REQ-1")
        try:
            assert get_request_id() == "REQ-1"
        finally:
            reset_request_id(token)
        assert get_request_id("fallback") == "fallback"

    def test_filter_stamps_the_bound_id(self):
        token = set_request_id("REQ-2")
        try:
            record = _record()
            assert RequestIdFilter().filter(record) is True
        finally:
            reset_request_id(token)
        assert record.request_id == "REQ-2"

    def test_filter_outside_a_request_uses_placeholder(self):
        record = _record()
        RequestIdFilter().filter(record)
        assert record.request_id == NO_REQUEST_ID

    def test_explicit_request_id_is_kept(self):
        record = _record()
        record.request_id = "from-extra"
        RequestIdFilter().filter(record)
        assert record.request_id == "from-extra"


class TestAttachFilter:
    def test_attaching_twice_adds_one_filter_per_handler(self):
        logger = logging.getLogger("motoserve.test.attach")
        handler = logging.StreamHandler()
        logger.addHandler(handler)
        try:
            attach_request_id_filter(logger)
            attach_request_id_filter(logger)
            filters = [f for f in handler.filters if isinstance(f, RequestIdFilter)]
            assert len(filters) == 1
        finally:
            logger.removeHandler(handler)
