"""Unit tests for Sentry reporting (vitalpoints/monitoring/sentry_config.py)"""
from unittest.mock import patch

from vitalpoints.exceptions import ConcurrencyContentionError, PersistenceError, ValidationError
from vitalpoints.monitoring import sentry_config


def test_init_disabled_by_default():
    with patch.object(sentry_config, "ENABLE_SENTRY", False), \
            patch.object(sentry_config.sentry_sdk, "init") as init:
        assert sentry_config.init_sentry() is False
    init.assert_not_called()


def test_init_requires_dsn():
    with patch.object(sentry_config, "ENABLE_SENTRY", True), \
            patch.object(sentry_config, "SENTRY_DSN", ""), \
            patch.object(sentry_config.sentry_sdk, "init") as init:
        assert sentry_config.init_sentry() is False
    init.assert_not_called()


def test_init_sets_release_and_filter():
    with patch.object(sentry_config, "ENABLE_SENTRY", True), \
            patch.object(sentry_config, "SENTRY_DSN", "https://key@sentry.example/1"), \
            patch.object(sentry_config.sentry_sdk, "init") as init:
        assert sentry_config.init_sentry() is True

    kwargs = init.call_args.kwargs
    assert kwargs["release"].startswith("vitalpoints@")
    assert kwargs["before_send"] is sentry_config._drop_expected_errors


def test_expected_errors_are_dropped():
    event = {"message": "x"}
    for error in (ValidationError("bad", field="x"), ConcurrencyContentionError()):
        hint = {"exc_info": (type(error), error, None)}
        assert sentry_config._drop_expected_errors(event, hint) is None


def test_unexpected_errors_are_sent():
    event = {"message": "x"}
    error = PersistenceError("insert failed")

    assert sentry_config._drop_expected_errors(event, {"exc_info": (type(error), error, None)}) is event
    assert sentry_config._drop_expected_errors(event, {}) is event


def test_capture_is_noop_when_disabled():
    with patch.object(sentry_config, "ENABLE_SENTRY", False), \
            patch.object(sentry_config.sentry_sdk, "capture_exception") as capture:
        sentry_config.capture_exception(RuntimeError("boom"), user_id="123")
    capture.assert_not_called()


def test_capture_sends_when_enabled():
    error = RuntimeError("boom")
    with patch.object(sentry_config, "ENABLE_SENTRY", True), \
            patch.object(sentry_config.sentry_sdk, "capture_exception") as capture:
        sentry_config.capture_exception(error, user_id="123", hook="food_log")
    capture.assert_called_once_with(error)


def test_caller_bug_tag_passes_the_filter():
    """Test a hook-originated validation error still reaches Sentry"""
    error = ValidationError("base_points must be >= 0", field="base_points")
    event = {"message": "x", "tags": {sentry_config.CALLER_BUG_TAG: "true", "hook": "award_food_log_points"}}

    assert sentry_config._drop_expected_errors(event, {"exc_info": (type(error), error, None)}) is event


def test_capture_tags_caller_bug():
    error = ValidationError("bad", field="x")
    with patch.object(sentry_config, "ENABLE_SENTRY", True), \
            patch.object(sentry_config.sentry_sdk, "new_scope") as new_scope, \
            patch.object(sentry_config.sentry_sdk, "capture_exception"):
        sentry_config.capture_exception(error, user_id="123", hook="award_food_log_points", caller_bug=True)

    scope = new_scope.return_value.__enter__.return_value
    scope.set_tag.assert_any_call(sentry_config.CALLER_BUG_TAG, "true")
    scope.set_tag.assert_any_call("hook", "award_food_log_points")
    scope.set_user.assert_called_once_with({"id": "123"})
