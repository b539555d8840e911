from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from flask import Flask

from yellowjersey.utils.observability import _before_send_scrub, init_sentry


class SentryOptionalInitTestCase(unittest.TestCase):
    def test_sentry_init_is_noop_without_dsn(self):
        app = Flask(__name__)
        with patch.dict(os.environ, {"SENTRY_DSN": ""}, clear=False):
            with patch("yellowjersey.utils.observability.sentry_sdk.init") as init:
                init_sentry(app)
        init.assert_not_called()

    def test_sentry_init_failure_does_not_break_boot(self):
        app = Flask(__name__)
        with patch.dict(os.environ, {"SENTRY_DSN": "https://key@sentry.example.com/1"}, clear=False):
            with patch("yellowjersey.utils.observability.sentry_sdk.init", side_effect=ValueError("bad dsn")):
                init_sentry(app)

    def test_secret_headers_are_scrubbed(self):
        event = {
            "request": {
                "headers": {
                    "Authorization": "Bearer abc",
                    "Stripe-Signature": "t=1,v1=x",
                    "X-Cron-Secret": "s3cret",
                    "Accept": "application/json",
                }
            }
        }
        scrubbed = _before_send_scrub(event, {})["request"]["headers"]
        self.assertEqual(scrubbed["Authorization"], "[REDACTED]")
        self.assertEqual(scrubbed["Stripe-Signature"], "[REDACTED]")
        self.assertEqual(scrubbed["X-Cron-Secret"], "[REDACTED]")
        self.assertEqual(scrubbed["Accept"], "application/json")


if __name__ == "__main__":
    unittest.main()
