"""
Tests for form field normalization and the retry helper.
"""
import asyncio

import pytest
from starlette.datastructures import FormData, UploadFile

from contact_backend.utils import first_value, linear_backoff, normalize_submission_fields, retry_async


class TestFirstValue:
    """Scalar coercion of possibly repeated form fields."""

    def test_scalar_is_returned_as_is(self):
        assert first_value("Ana") == "Ana"

    def test_first_element_wins(self):
        assert first_value(["Ana", "Beto"]) == "Ana"

    def test_missing_values_use_default(self):
        assert first_value(None) == ""
        assert first_value([]) == ""
        assert first_value(None, default="false") == "false"

    def test_non_string_scalars_are_stringified(self):
        assert first_value(42) == "42"
        assert first_value(b"bytes") == "bytes"

    def test_uploaded_files_are_ignored(self):
        upload = UploadFile(file=None, filename="cv.pdf")
        assert first_value(upload) == ""


class TestNormalizeSubmissionFields:
    """Flattening of the contact form payload."""

    def test_form_data_with_duplicate_keys(self):
        form = FormData([("name", "Ana"), ("name", "Beto"), ("email", "ana@example.com")])

        fields = normalize_submission_fields(form)

        assert fields["name"] == "Ana"
        assert fields["email"] == "ana@example.com"
        assert fields["company"] == ""
        assert fields["recaptcha_response"] == ""
        assert fields["agreement"] == "false"

    def test_plain_mapping_with_lists(self):
        fields = normalize_submission_fields({"phone": ["123", "456"], "agreement": ["true"]})

        assert fields["phone"] == "123"
        assert fields["agreement"] == "true"

    def test_empty_input_is_total(self):
        fields = normalize_submission_fields({})

        assert set(fields) == {
            "name", "email", "company", "phone", "message", "recaptcha_response", "agreement"
        }
        assert fields["agreement"] == "false"


class TestRetryAsync:
    """Bounded retry with injected sleep."""

    def test_linear_backoff(self):
        delay = linear_backoff(2.0)
        assert [delay(1), delay(2)] == [2.0, 4.0]

    def test_returns_first_success(self):
        calls = []
        sleeps = []

        async def operation():
            calls.append(1)
            if len(calls) < 2:
                raise RuntimeError("boom")
            return "ok"

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        result = asyncio.run(retry_async(operation, 3, linear_backoff(2.0), sleep=fake_sleep))

        assert result == "ok"
        assert len(calls) == 2
        assert sleeps == [2.0]

    def test_reraises_after_last_attempt(self):
        sleeps = []

        async def operation():
            raise ValueError("still failing")

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        with pytest.raises(ValueError, match="still failing"):
            asyncio.run(retry_async(operation, 3, linear_backoff(2.0), sleep=fake_sleep))

        # No wait after the final attempt
        assert sleeps == [2.0, 4.0]
