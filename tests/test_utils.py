import logging
import os
import unittest
from datetime import timedelta
from unittest import mock

from perdiem_rates.config import AllowancesEndpoints, LookupSettings, RateBounds
from perdiem_rates.errors import InvalidLocationCode, NoDataFound, PerDiemError
from perdiem_rates.ingestion.models import ParseStrategy, RejectedCandidate
from perdiem_rates.utils.location_codes import KNOWN_LOCATION_CODES, normalise_location_code
from perdiem_rates.utils import logger as perdiem_logger
from perdiem_rates.utils.rate_limit import RateLimiter


class LocationCodeTests(unittest.TestCase):
    def test_accepts_five_digits(self):
        self.assertEqual(normalise_location_code("11410"), "11410")

    def test_strips_separators(self):
        self.assertEqual(normalise_location_code(" 11-410 "), "11410")
        self.assertEqual(normalise_location_code(10104), "10104")

    def test_rejects_wrong_length(self):
        for value in ("1141", "114100", "", None, "abcde"):
            with self.subTest(value=value):
                with self.assertRaises(InvalidLocationCode):
                    normalise_location_code(value)

    def test_known_codes_are_valid(self):
        for code in KNOWN_LOCATION_CODES:
            self.assertEqual(normalise_location_code(code), code)


class SettingsTests(unittest.TestCase):
    def test_defaults(self):
        settings = LookupSettings()
        self.assertEqual(settings.timeout, 15.0)
        self.assertEqual(settings.max_attempts, 3)
        self.assertEqual(settings.staleness, timedelta(hours=24))
        self.assertEqual(settings.rate_limit_gap, 1.0)

    def test_linear_retry_delay(self):
        settings = LookupSettings()
        self.assertEqual([settings.retry_delay(n) for n in (1, 2)], [2.0, 4.0])

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            LookupSettings(max_attempts=0)
        with self.assertRaises(ValueError):
            LookupSettings(timeout=0)
        with self.assertRaises(ValueError):
            LookupSettings(rate_limit_gap=-1)

    def test_bounds(self):
        bounds = RateBounds()
        self.assertTrue(bounds.accepts(193, 152, 345))
        self.assertTrue(bounds.accepts(0, 15, 15))
        self.assertFalse(bounds.accepts(2001, 152, 345))
        self.assertFalse(bounds.accepts(193, 1001, 345))
        self.assertFalse(bounds.accepts(193, 152, 3001))
        self.assertFalse(bounds.accepts(-1, 152, 345))

    def test_endpoint_urls(self):
        endpoints = AllowancesEndpoints(base_url="https://example.test/web920")
        self.assertEqual(endpoints.redirect_url, "https://example.test/web920/LinkRedirect.asp")
        self.assertEqual(endpoints.form_url, "https://example.test/web920/per_diem_action.asp")


class RateLimiterTests(unittest.TestCase):
    def _limiter(self, ticks):
        self.sleeps = []
        clock = iter(ticks)
        return RateLimiter(1.0, clock=lambda: next(clock), sleep=self.sleeps.append)

    def test_first_call_does_not_wait(self):
        limiter = self._limiter([0.0])
        self.assertEqual(limiter.wait(), 0.0)
        self.assertEqual(self.sleeps, [])

    def test_waits_for_remaining_gap(self):
        # wait() reads the clock once to check the gap and once to record the call.
        limiter = self._limiter([0.0, 0.25, 1.0, 5.0, 5.0])
        limiter.wait()
        self.assertAlmostEqual(limiter.wait(), 0.75)
        self.assertEqual(limiter.wait(), 0.0)
        self.assertEqual(self.sleeps, [0.75])

    def test_negative_interval(self):
        with self.assertRaises(ValueError):
            RateLimiter(-0.1)


class ErrorTests(unittest.TestCase):
    def test_hierarchy(self):
        self.assertTrue(issubclass(InvalidLocationCode, PerDiemError))
        self.assertTrue(issubclass(NoDataFound, PerDiemError))

    def test_no_data_found_keeps_rejected_candidates(self):
        candidate = RejectedCandidate(ParseStrategy.GENERIC_PATTERN, 2500, 122, 2622)
        error = NoDataFound("nothing", location_code="10104", rejected=[candidate])
        self.assertEqual(error.rejected, (candidate,))
        self.assertEqual(error.location_code, "10104")
        self.assertEqual(str(error), "nothing")


class LoggerTests(unittest.TestCase):
    def setUp(self):
        package_logger = logging.getLogger(perdiem_logger.ROOT_LOGGER_NAME)
        self.addCleanup(package_logger.setLevel, package_logger.level)

    def test_level_from_environment(self):
        with mock.patch.dict(os.environ, {perdiem_logger.LOG_LEVEL_ENV: "debug"}):
            self.assertEqual(perdiem_logger._level_from_env(), logging.DEBUG)
        with mock.patch.dict(os.environ, {perdiem_logger.LOG_LEVEL_ENV: "chatty"}):
            self.assertEqual(perdiem_logger._level_from_env(), logging.INFO)

    def test_module_loggers_follow_package_level(self):
        module_logger = perdiem_logger.get_logger("perdiem_rates.lookup")
        perdiem_logger.set_log_level(logging.DEBUG)
        self.assertTrue(module_logger.isEnabledFor(logging.DEBUG))
        perdiem_logger.set_log_level("WARNING")
        self.assertFalse(module_logger.isEnabledFor(logging.INFO))


if __name__ == "__main__":
    unittest.main()
