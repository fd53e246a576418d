"""Tests for platform error classification."""

import pytest

from app.models import Platform
from app.services.error_classifier import ErrorCategory, classify_error, classify_message


class TestClassifyError:
    def test_facebook_application_request_limit(self):
        result = classify_error("(#4) Application request limit reached", Platform.FACEBOOK)

        assert result.category == ErrorCategory.RATE_LIMITED
        assert result.message.startswith("Facebook rate limit reached.")
        assert "(details: (#4) Application request limit reached)" in result.message

    @pytest.mark.parametrize(
        ("raw", "category"),
        [
            ("Error validating access token: Session has expired", ErrorCategory.TOKEN_EXPIRED),
            ("(#10) Application does not have permission", ErrorCategory.MISSING_PERMISSION),
            ("Your account is temporarily blocked", ErrorCategory.SPAM_RESTRICTED),
            ("This video has already been uploaded", ErrorCategory.DUPLICATE_CONTENT),
            ("Blocked by a copyright claim", ErrorCategory.COPYRIGHT),
            ("Media container processing failed (status=ERROR)", ErrorCategory.UPLOAD_FAILED),
            ("Quota exceeded for this project", ErrorCategory.RATE_LIMITED),
        ],
    )
    def test_categories(self, raw, category):
        assert classify_error(raw, Platform.YOUTUBE).category == category

    def test_unknown_error_passes_through(self):
        result = classify_error("Something odd happened", Platform.INSTAGRAM)

        assert result.category == ErrorCategory.UNKNOWN
        assert result.message == "Something odd happened"

    def test_long_details_are_truncated(self):
        raw = "rate limit " + "x" * 500

        message = classify_message(raw, "YOUTUBE")

        assert message.startswith("YouTube rate limit reached.")
        assert "(details: ..." in message
        assert len(message) < 300

    def test_provider_display_name_kept_as_is(self):
        message = classify_message("429 Resource has been exhausted", "Gemini 2.5 Flash")

        assert message.startswith("Gemini 2.5 Flash rate limit reached.")

    def test_uppercase_identifier_is_capitalized(self):
        assert classify_message("rate limit", "TIKTOK").startswith("Tiktok rate limit")
