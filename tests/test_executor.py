"""
Unit tests for RenderJobExecutor.

Runs jobs against the in-memory FakeSession: configuration, navigation,
status/header capture, form handling, network capture and timeouts.
"""

import time

import pytest

from crawly.config import DEFAULT_USER_AGENT
from crawly.errors import ContextError, NavigationError, RenderTimeoutError
from crawly.models import RenderJob
from crawly.services.driver import REQUEST, RESPONSE
from crawly.services.renderer import DEFAULT_BROWSER_HEADERS, RenderJobExecutor

from fakes import FakePage, FakeRequest, FakeSession, form_page


@pytest.fixture
def executor(test_settings, metrics):
    return RenderJobExecutor(test_settings, metrics)


class TestBasicRender:

    @pytest.mark.asyncio
    async def test_example_domain(self, executor, fake_session):
        result = await executor.execute(RenderJob(url="https://example.com"), fake_session)

        assert result.status_code == 200
        assert "<h1>Example Domain</h1>" in result.html
        assert result.captured_calls == []
        assert result.final_url == "https://example.com"
        assert result.headers["content-type"].startswith("text/html")

    @pytest.mark.asyncio
    async def test_serializes_with_wire_names(self, executor, fake_session):
        result = await executor.execute(RenderJob(url="https://example.com"), fake_session)

        body = result.model_dump(by_alias=True)

        assert set(body) == {"page", "status", "headers", "finalUrl", "supabaseCalls"}

    @pytest.mark.asyncio
    async def test_redirect_changes_final_url(self, executor):
        site = {"http://old.example.com/": FakePage(html="<p>moved</p>", redirect_to="https://new.example.com/")}
        session = FakeSession(1, site)

        result = await executor.execute(RenderJob(url="http://old.example.com/"), session)

        assert result.final_url == "https://new.example.com/"

    @pytest.mark.asyncio
    async def test_redirect_keeps_main_document_headers(self, executor):
        site = {
            "http://old.example.com/": FakePage(
                redirect_to="https://new.example.com/",
                headers={"content-type": "text/html"},
                redirect_headers={"location": "https://new.example.com/"},
            )
        }
        session = FakeSession(1, site)

        result = await executor.execute(RenderJob(url="http://old.example.com/"), session)

        assert result.headers == {"location": "https://new.example.com/"}
        assert result.status_code == 200

    @pytest.mark.asyncio
    async def test_error_status_is_a_result(self, executor):
        site = {"https://example.com/missing": FakePage(html="<h1>Not Found</h1>", status=404)}
        session = FakeSession(1, site)

        result = await executor.execute(RenderJob(url="https://example.com/missing"), session)

        assert result.status_code == 404
        assert "Not Found" in result.html

    @pytest.mark.asyncio
    async def test_uses_job_timeout(self, executor, fake_session):
        await executor.execute(RenderJob(url="https://example.com", timeout_ms=1234), fake_session)
        assert fake_session.goto_calls == [("https://example.com", 1234)]

    @pytest.mark.asyncio
    async def test_uses_default_timeout(self, executor, fake_session):
        await executor.execute(RenderJob(url="https://example.com"), fake_session)
        assert fake_session.goto_calls == [("https://example.com", 60000)]


class TestConfiguration:

    @pytest.mark.asyncio
    async def test_user_agent_and_headers_applied(self, executor, fake_session):
        job = RenderJob(
            url="https://example.com",
            headers={"X-Test": "1", "Authorization": "Bearer abc", "Accept-Language": "fr-FR"},
        )

        await executor.execute(job, fake_session)

        assert fake_session.user_agent == DEFAULT_USER_AGENT
        assert fake_session.extra_headers["X-Test"] == "1"
        assert fake_session.extra_headers["Authorization"] == "Bearer abc"
        assert fake_session.extra_headers["Accept-Language"] == "fr-FR"
        assert fake_session.extra_headers["Accept"] == DEFAULT_BROWSER_HEADERS["Accept"]

    @pytest.mark.asyncio
    async def test_previous_job_headers_overwritten(self, executor, fake_session):
        await executor.execute(RenderJob(url="https://example.com", headers={"X-First": "1"}), fake_session)
        await executor.execute(RenderJob(url="https://example.com", headers={"X-Second": "2"}), fake_session)

        assert "X-First" not in fake_session.extra_headers
        assert fake_session.extra_headers["X-Second"] == "2"

    @pytest.mark.asyncio
    async def test_interception_enabled_and_listeners_removed(self, executor, fake_session):
        await executor.execute(RenderJob(url="https://example.com"), fake_session)

        assert fake_session.intercepting is True
        assert fake_session.listener_count(REQUEST) == 0
        assert fake_session.listener_count(RESPONSE) == 0


class TestNetworkCapture:

    @pytest.mark.asyncio
    async def test_backend_calls_in_request_order(self, executor):
        page = FakePage(
            html="<div id=app></div>",
            requests=[
                FakeRequest(url="https://app.example.com/bundle.js"),
                FakeRequest(url="https://abc.supabase.co/auth/v1/user", headers={"authorization": "Bearer jwt"}),
                FakeRequest(url="https://abc.supabase.co/rest/v1/profiles", headers={"accept": "*/*"}),
                FakeRequest(
                    url="https://abc.supabase.co/rest/v1/rpc/search",
                    method="POST",
                    headers={"apikey": "anon", "content-type": "application/json"},
                    post_data='{"q": "shoes"}',
                ),
            ],
        )
        session = FakeSession(1, {"https://app.example.com/": page})

        result = await executor.execute(RenderJob(url="https://app.example.com/"), session)

        assert [call.url for call in result.captured_calls] == [
            "https://abc.supabase.co/auth/v1/user",
            "https://abc.supabase.co/rest/v1/rpc/search",
        ]
        assert result.captured_calls[1].post_data == '{"q": "shoes"}'
        assert result.captured_calls[1].headers == {"apikey": "anon", "content-type": "application/json"}

    @pytest.mark.asyncio
    async def test_captures_are_job_scoped(self, executor):
        page = FakePage(requests=[FakeRequest(url="https://abc.supabase.co/rest/v1/x", headers={"apikey": "k"})])
        session = FakeSession(1, {"https://app.example.com/": page, "https://example.com": FakePage()})

        first = await executor.execute(RenderJob(url="https://app.example.com/"), session)
        second = await executor.execute(RenderJob(url="https://example.com"), session)

        assert len(first.captured_calls) == 1
        assert second.captured_calls == []


class TestForms:

    @pytest.mark.asyncio
    async def test_form_submission(self, executor):
        session = FakeSession(1, {"https://httpbin.org/forms/post": form_page(fields=("name", "email"))})
        job = RenderJob(
            url="https://httpbin.org/forms/post",
            form_data={"name": "Test", "email": "t@example.com"},
            form_selector="form",
        )

        result = await executor.execute(job, session)

        assert result.final_url == "https://httpbin.org/post"
        assert "Test" in result.html
        assert "t@example.com" in result.html
        assert [value for _, value in session.typed] == ["Test", "t@example.com"]
        assert session.healthy is True

    @pytest.mark.asyncio
    async def test_form_error_is_absorbed(self, executor, metrics):
        session = FakeSession(1, {"https://example.com": FakePage(html="<h1>No form here</h1>")})
        job = RenderJob(url="https://example.com", form_data={"name": "Test"}, form_selector="#signup")

        result = await executor.execute(job, session)

        assert result.status_code == 200
        assert "No form here" in result.html
        assert result.final_url == "https://example.com"
        assert metrics.form_errors == 1
        assert session.healthy is True

    @pytest.mark.asyncio
    async def test_form_navigation_timeout_marks_session_unhealthy(self, executor, metrics):
        page = form_page(fields=("name",))
        page.form_action = None
        session = FakeSession(1, {"https://example.com/form": page})
        job = RenderJob(url="https://example.com/form", form_data={"name": "Test"}, form_selector="form")

        result = await executor.execute(job, session)

        assert result.final_url == "https://example.com/form"
        assert metrics.form_errors == 1
        assert session.healthy is False

    @pytest.mark.asyncio
    async def test_form_skipped_without_selector(self, executor):
        session = FakeSession(1, {"https://httpbin.org/forms/post": form_page()})
        job = RenderJob(url="https://httpbin.org/forms/post", form_data={"custname": "Test"})

        result = await executor.execute(job, session)

        assert session.typed == []
        assert result.final_url == "https://httpbin.org/forms/post"


class TestFailures:

    @pytest.mark.asyncio
    async def test_navigation_error_propagates(self, executor, fake_session):
        with pytest.raises(NavigationError):
            await executor.execute(RenderJob(url="invalid-url"), fake_session)
        assert fake_session.listener_count(REQUEST) == 0

    @pytest.mark.asyncio
    async def test_navigation_timeout_within_bound(self, executor, metrics):
        session = FakeSession(1, {"https://hang.example.com/": FakePage(hang=True)})

        started = time.monotonic()
        with pytest.raises(RenderTimeoutError):
            await executor.execute(RenderJob(url="https://hang.example.com/", timeout_ms=200), session)
        elapsed = time.monotonic() - started

        # Fails after timeout + grace (100ms), never earlier and not much later.
        assert 0.2 <= elapsed < 1.5
        assert session.healthy is False
        assert metrics.slow_navigations == 1

    @pytest.mark.asyncio
    async def test_engine_timeout_marks_session_unhealthy(self, executor):
        page = FakePage(error=RenderTimeoutError("navigation timed out: Timeout 200ms exceeded"))
        session = FakeSession(1, {"https://slow.example.com/": page})

        with pytest.raises(RenderTimeoutError):
            await executor.execute(RenderJob(url="https://slow.example.com/", timeout_ms=200), session)

        assert session.healthy is False

    @pytest.mark.asyncio
    async def test_context_error_propagates(self, executor):
        session = FakeSession(1, {"https://example.com": FakePage(broken_content=True)})

        with pytest.raises(ContextError):
            await executor.execute(RenderJob(url="https://example.com"), session)

        assert session.healthy is False
