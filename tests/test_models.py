"""
Tests for request/result models and environment-driven settings.
"""

import pytest
from pydantic import ValidationError

from crawly.config import DEFAULT_USER_AGENT, Settings
from crawly.models import CapturedCall, RenderJob, RenderRequest, RenderResult


class TestRenderRequest:

    def test_parses_camel_case_body(self):
        request = RenderRequest.model_validate({
            "url": "https://httpbin.org/forms/post",
            "headers": {"X-Test": "1"},
            "formData": {"custname": "Test"},
            "formSelector": "form",
            "submitSelector": "button",
            "timeoutMs": 15000,
        })

        job = request.to_job()

        assert job.url == "https://httpbin.org/forms/post"
        assert job.headers == {"X-Test": "1"}
        assert job.form_data == {"custname": "Test"}
        assert job.form_selector == "form"
        assert job.submit_selector == "button"
        assert job.timeout_ms == 15000
        assert job.wants_form is True

    def test_timeout_ms_wins_over_options(self):
        request = RenderRequest.model_validate({
            "url": "https://example.com",
            "timeoutMs": 1000,
            "options": {"timeout": 2000},
        })
        assert request.to_job().timeout_ms == 1000

    def test_options_timeout_used_as_fallback(self):
        request = RenderRequest.model_validate({"url": "https://example.com", "options": {"timeout": 2000}})
        assert request.to_job().timeout_ms == 2000

    def test_no_timeout(self):
        assert RenderRequest(url="https://example.com").to_job().timeout_ms is None

    def test_url_optional_at_parse_time(self):
        assert RenderRequest.model_validate({}).url is None

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValidationError):
            RenderRequest.model_validate({"url": "https://example.com", "timeoutMs": -5})


class TestRenderJob:

    def test_form_requires_selector_and_data(self):
        assert RenderJob(url="https://example.com", form_data={"a": "1"}).wants_form is False
        assert RenderJob(url="https://example.com", form_selector="form").wants_form is False
        assert RenderJob(url="https://example.com", form_selector="form", form_data={}).wants_form is False

    def test_frozen(self):
        job = RenderJob(url="https://example.com")
        with pytest.raises(ValidationError):
            job.url = "https://other.example.com"


class TestRenderResult:

    def test_wire_names(self):
        result = RenderResult(
            html="<html></html>",
            status_code=201,
            headers={"content-type": "text/html"},
            final_url="https://example.com/done",
            captured_calls=[CapturedCall(url="https://abc.supabase.co/rest/v1/x", method="GET")],
        )

        body = result.model_dump(by_alias=True)

        assert body == {
            "page": "<html></html>",
            "status": 201,
            "headers": {"content-type": "text/html"},
            "finalUrl": "https://example.com/done",
            "supabaseCalls": [
                {"url": "https://abc.supabase.co/rest/v1/x", "method": "GET", "headers": {}, "postData": None}
            ],
        }


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("MAX_CONCURRENCY", "CONTEXT_POLICY", "DEFAULT_TIMEOUT_MS", "PORT", "BACKEND_API_MARKER"):
            monkeypatch.delenv(name, raising=False)

        config = Settings(_env_file=None)

        assert config.max_concurrency == 2
        assert config.context_policy == "reuse"
        assert config.max_context_uses == 50
        assert config.default_timeout_ms == 60000
        assert config.form_navigation_timeout_ms == 30000
        assert config.backend_api_marker == "supabase"
        assert config.slow_request_threshold_ms == 5000
        assert config.port == 3000
        assert config.user_agent == DEFAULT_USER_AGENT

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MAX_CONCURRENCY", "5")
        monkeypatch.setenv("CONTEXT_POLICY", "fresh")
        monkeypatch.setenv("FORM_STRICT_FIELDS", "false")

        config = Settings(_env_file=None)

        assert config.max_concurrency == 5
        assert config.context_policy == "fresh"
        assert config.form_strict_fields is False

    def test_rejects_invalid_policy(self, monkeypatch):
        monkeypatch.setenv("CONTEXT_POLICY", "shared")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_rejects_zero_concurrency(self, monkeypatch):
        monkeypatch.setenv("MAX_CONCURRENCY", "0")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)
