"""
Tests for the email notifier: retries, one-at-a-time throttling and templates.
"""
import asyncio
import threading
import time
from types import SimpleNamespace

import pytest

from contact_backend.config import Settings
from contact_backend.services.email_service import (
    EmailMessage,
    EmailNotifier,
    build_newsletter_welcome,
    build_submission_alert,
    build_submission_confirmation,
)


@pytest.fixture
def submission():
    return SimpleNamespace(
        id=7,
        name="Ana <script>",
        email="ana@example.com",
        company="Acme & Co",
        phone="123",
        message="Hello\nworld",
    )


@pytest.fixture
def message():
    return EmailMessage(
        to=["ana@example.com"],
        subject="Hi",
        html="<p>Hi</p>",
        text="Hi",
        correlation_id="submission-7",
    )


def _notifier(mailer, sleeps=None):
    async def fake_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    return EmailNotifier(Settings(), transport=mailer, sleep=fake_sleep)


class TestDelivery:
    """Bounded retry around the relay call."""

    def test_sends_once_on_success(self, env, mailer, message):
        notifier = _notifier(mailer)

        assert asyncio.run(notifier.deliver(message)) is True
        assert mailer.calls == 1
        params = mailer.sent[0]
        assert params["to"] == ["ana@example.com"]
        assert params["headers"]["X-Entity-Ref-ID"] == "submission-7"
        assert params["from"] == Settings().mail_from

    def test_retries_with_linear_backoff(self, env, mailer, message):
        env.setenv("EMAIL_RETRY_DELAY_MS", "2000")
        mailer.fail_times = 2
        sleeps = []

        assert asyncio.run(_notifier(mailer, sleeps).deliver(message)) is True
        assert mailer.calls == 3
        assert sleeps == [2.0, 4.0]

    def test_exhausted_retries_are_swallowed(self, env, mailer, message):
        mailer.fail_times = 10

        assert asyncio.run(_notifier(mailer).deliver(message)) is False
        assert mailer.calls == 3

    def test_max_attempts_is_configurable(self, env, mailer, message):
        env.setenv("EMAIL_MAX_ATTEMPTS", "5")
        mailer.fail_times = 10

        asyncio.run(_notifier(mailer).deliver(message))

        assert mailer.calls == 5

    def test_without_api_key_nothing_is_sent(self, env, message):
        notifier = EmailNotifier(Settings())

        assert notifier.verify() is False
        assert asyncio.run(notifier.deliver(message)) is False

    def test_default_reply_to(self, env, mailer, message):
        env.setenv("RESEND_REPLY_TO", "hello@example.com")

        asyncio.run(_notifier(mailer).deliver(message))

        assert mailer.sent[0]["reply_to"] == ["hello@example.com"]

    def test_dispatch_and_drain(self, env, mailer, message):
        notifier = _notifier(mailer)

        async def _run():
            notifier.dispatch(message)
            notifier.dispatch(message)
            await notifier.aclose()

        asyncio.run(_run())

        assert mailer.calls == 2


class TestThrottle:
    """One relay call at a time, spaced by 1/EMAIL_RATE_LIMIT seconds."""

    class RecordingRelay:
        def __init__(self, fail_first=0):
            self.lock = threading.Lock()
            self.in_flight = 0
            self.max_in_flight = 0
            self.started = []
            self.fail_first = fail_first

        def __call__(self, params):
            with self.lock:
                self.in_flight += 1
                self.max_in_flight = max(self.max_in_flight, self.in_flight)
                self.started.append(time.monotonic())
                attempt = len(self.started)
            try:
                time.sleep(0.01)
                if attempt <= self.fail_first:
                    raise RuntimeError("relay unavailable")
                return {"id": f"email-{attempt}"}
            finally:
                with self.lock:
                    self.in_flight -= 1

    @staticmethod
    def _gaps(started):
        return [later - earlier for earlier, later in zip(started, started[1:])]

    def test_concurrent_sends_are_serialized_and_spaced(self, env, message):
        env.setenv("EMAIL_RATE_LIMIT", "5")
        relay = self.RecordingRelay()
        notifier = EmailNotifier(Settings(), transport=relay)

        async def _send_all():
            return await asyncio.gather(*(notifier.deliver(message) for _ in range(4)))

        assert asyncio.run(_send_all()) == [True] * 4
        assert relay.max_in_flight == 1
        assert len(relay.started) == 4
        assert min(self._gaps(relay.started)) >= 0.19

    def test_retries_also_wait_for_the_interval(self, env, message):
        env.setenv("EMAIL_RATE_LIMIT", "5")
        relay = self.RecordingRelay(fail_first=1)
        notifier = EmailNotifier(Settings(), transport=relay)

        assert asyncio.run(notifier.deliver(message)) is True
        assert len(relay.started) == 2
        assert self._gaps(relay.started)[0] >= 0.19

    def test_rate_zero_disables_spacing(self, env, message):
        relay = self.RecordingRelay()
        notifier = EmailNotifier(Settings(), transport=relay)

        async def _send_all():
            return await asyncio.gather(*(notifier.deliver(message) for _ in range(3)))

        asyncio.run(_send_all())

        assert relay.max_in_flight == 1
        assert relay.started[-1] - relay.started[0] < 0.19


class TestTemplates:
    """Rendered messages and their headers."""

    def test_confirmation_escapes_user_input(self, submission):
        email = build_submission_confirmation(submission)

        assert email.to == ["ana@example.com"]
        assert "Ana &lt;script&gt;" in email.html
        assert "<script>" not in email.html
        assert "Hello\nworld" in email.text
        assert email.correlation_id == "submission-7"

    def test_alert_goes_to_admins_with_reply_to_submitter(self, submission):
        email = build_submission_alert(submission, ["admin@example.com"])

        assert email.to == ["admin@example.com"]
        assert email.reply_to == ["ana@example.com"]
        assert "Acme &amp; Co" in email.html
        assert "Company: Acme & Co" in email.text

    def test_welcome_has_unsubscribe_header(self):
        email = build_newsletter_welcome(
            "ana+news@example.com",
            3,
            unsubscribe_email="unsubscribe@example.com",
            site_url="https://example.com",
        )

        assert email.correlation_id == "subscription-3"
        header = email.headers["List-Unsubscribe"]
        assert "<https://example.com/unsubscribe?email=ana%2Bnews%40example.com>" in header
        assert "<mailto:unsubscribe@example.com?subject=unsubscribe>" in header

    def test_welcome_without_unsubscribe_targets(self):
        email = build_newsletter_welcome("ana@example.com", 1)
        assert "List-Unsubscribe" not in email.headers
