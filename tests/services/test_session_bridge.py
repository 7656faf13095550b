"""Tests for the web session bridge."""

import json
from datetime import datetime, timezone

import pytest

from conftest import FakeHealthStore, events_named, make_session
from viiraa_connect.models.health import HealthSample, VitalType
from viiraa_connect.services.analytics import Events
from viiraa_connect.services.health_service import HealthDataService
from viiraa_connect.services.session_bridge import (
    HANDSHAKE_VERSION,
    HIDE_LOGOUT_SCRIPT,
    SOURCE_ACCOUNT_SWITCH,
    SOURCE_DOCUMENT_START,
    SOURCE_POST_LOAD,
    NavigationPolicy,
    SessionBridge,
    build_session_payload,
    build_session_script,
)


class SignOutRecorder:
    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1


@pytest.fixture
def sign_out():
    return SignOutRecorder()


@pytest.fixture
def health(health_store, analytics):
    return HealthDataService(health_store, analytics)


@pytest.fixture
def bridge(settings, analytics, sign_out, health, browser):
    return SessionBridge(settings, analytics, sign_out, health, browser)


class TestSessionScript:
    """Tests for the injected script."""

    def test_payload_shape(self, now):
        payload = build_session_payload(make_session(), now)

        assert payload["access_token"] == "access-1"
        assert payload["expires_at"] == int(now.timestamp()) + 3600
        assert payload["user"]["id"] == "user-a"
        assert payload["user"]["aud"] == "authenticated"
        assert payload["user"]["role"] == "authenticated"
        assert payload["user"]["email_confirmed_at"] == now.isoformat()

    def test_script_carries_contract(self, settings, now):
        script = build_session_script(make_session(), settings, SOURCE_DOCUMENT_START, now)

        assert json.dumps("sb-abcdefgh-auth-token") in script
        assert json.dumps(settings.web_auth_event_name) in script
        assert json.dumps(SOURCE_DOCUMENT_START) in script
        assert f"version: {HANDSHAKE_VERSION}" in script
        assert "window.skipWebAuth = true" in script

    def test_values_are_json_encoded(self, settings, now):
        session = make_session(access_token='abc"; alert(1); "')
        script = build_session_script(session, settings, SOURCE_DOCUMENT_START, now)

        assert json.dumps(build_session_payload(session, now)) in script
        assert 'abc"; alert(1)' not in script

    def test_storage_key_override(self, settings, now):
        settings.web_auth_storage_key = "custom-key"
        script = build_session_script(make_session(), settings, SOURCE_POST_LOAD, now)
        assert '"custom-key"' in script


class TestAttach:
    """Tests for attaching a surface."""

    def test_attach_without_session_shows_prompt(self, bridge, surface):
        bridge.attach(surface, None)

        assert surface.sign_in_prompts == 1
        assert surface.loaded == []
        assert surface.user_scripts == []

    def test_attach_with_session_installs_and_loads(self, bridge, surface, settings):
        bridge.attach(surface, make_session())

        assert len(surface.user_scripts) == 1
        assert json.dumps(SOURCE_DOCUMENT_START) in surface.user_scripts[0]
        assert surface.loaded == [settings.dashboard_url]
        assert bridge.marker.last_injected_user_id == "user-a"


class TestNavigation:
    """Tests for navigation callbacks."""

    @pytest.mark.asyncio
    async def test_post_load_injection_runs_once(self, bridge, surface, analytics):
        bridge.attach(surface, make_session())

        for _ in range(4):
            bridge.on_navigation_started()
            await bridge.on_navigation_finished()

        post_load = surface.evaluated_containing(json.dumps(SOURCE_POST_LOAD))
        assert len(post_load) == 1
        assert surface.evaluated.count(HIDE_LOGOUT_SCRIPT) == 4
        assert surface.loading == [True, False] * 4
        assert events_named(analytics, Events.WEB_SESSION_INJECTED) == [{"source": SOURCE_POST_LOAD}]

    @pytest.mark.asyncio
    async def test_injection_failure_is_logged(self, bridge, surface, analytics):
        bridge.attach(surface, make_session())
        surface.evaluate_error = RuntimeError("page gone")

        await bridge.on_navigation_finished()

        assert events_named(analytics, Events.WEB_SESSION_INJECTED) == []

    @pytest.mark.asyncio
    async def test_health_data_pushed_when_authorized(self, bridge, surface, health_store, analytics):
        health_store.authorized[VitalType.GLUCOSE] = True
        health_store.latest[VitalType.GLUCOSE] = HealthSample(
            value=105, unit="mg/dL", timestamp=datetime(2025, 11, 20, 9, tzinfo=timezone.utc)
        )
        health_store.totals[VitalType.STEPS] = 4200
        bridge.attach(surface, make_session())

        await bridge.on_navigation_finished()

        pushed = surface.evaluated_containing("iosHealthData")
        assert len(pushed) == 1
        assert '"glucose_mg_dl": 105' in pushed[0]
        injected = events_named(analytics, Events.HEALTHKIT_DATA_INJECTED)
        assert "glucose_mg_dl" in injected[0]["data_types"]

    @pytest.mark.asyncio
    async def test_no_health_push_without_authorization(self, bridge, surface):
        bridge.attach(surface, make_session())
        await bridge.on_navigation_finished()
        assert surface.evaluated_containing("iosHealthData") == []

    @pytest.mark.asyncio
    async def test_health_status_failure_is_absorbed(self, bridge, surface, health_store):
        health_store.status_error = RuntimeError("store locked")
        bridge.attach(surface, make_session())

        await bridge.on_navigation_finished()

        assert surface.loading == [False]
        assert HIDE_LOGOUT_SCRIPT in surface.evaluated
        assert surface.evaluated_containing("iosHealthData") == []

    def test_navigation_failed_clears_loading(self, bridge, surface):
        bridge.attach(surface, make_session())
        bridge.on_navigation_started()
        bridge.on_navigation_failed(RuntimeError("offline"))
        assert surface.loading == [True, False]


class TestSessionChanges:
    """Tests for following the native session."""

    @pytest.mark.asyncio
    async def test_user_switch_reinjects_once(self, bridge, surface, analytics):
        bridge.attach(surface, make_session("user-a"))
        await bridge.on_navigation_finished()

        await bridge.on_session_changed(make_session("user-b", access_token="access-b"))
        await bridge.on_session_changed(make_session("user-b", access_token="access-b2"))
        await bridge.on_navigation_finished()

        switches = surface.evaluated_containing(json.dumps(SOURCE_ACCOUNT_SWITCH))
        assert len(switches) == 1
        assert '"user-b"' in switches[0]
        assert len(surface.evaluated_containing(json.dumps(SOURCE_POST_LOAD))) == 1
        assert bridge.marker.last_injected_user_id == "user-b"
        assert len(surface.user_scripts) == 1
        assert '"user-b"' in surface.user_scripts[0]
        assert '"user-a"' not in surface.user_scripts[0]

    @pytest.mark.asyncio
    async def test_token_refresh_same_user_does_nothing(self, bridge, surface):
        bridge.attach(surface, make_session("user-a"))
        await bridge.on_navigation_finished()
        evaluated_before = list(surface.evaluated)

        await bridge.on_session_changed(make_session("user-a", access_token="access-2"))

        assert surface.evaluated == evaluated_before
        assert len(surface.user_scripts) == 1
        assert surface.loaded == ["https://viiraa.com/dashboard"]

    @pytest.mark.asyncio
    async def test_sign_out_shows_prompt(self, bridge, surface):
        bridge.attach(surface, make_session())

        await bridge.on_session_changed(None)

        assert surface.sign_in_prompts == 1
        assert bridge.marker.last_injected_user_id is None
        assert surface.user_scripts == []

    @pytest.mark.asyncio
    async def test_next_user_never_sees_previous_tokens(self, bridge, surface, settings):
        bridge.attach(surface, make_session("user-a", access_token="secret-a"))
        await bridge.on_navigation_finished()

        await bridge.on_session_changed(None)
        await bridge.on_session_changed(make_session("user-b", access_token="secret-b"))

        assert len(surface.user_scripts) == 1
        assert "secret-b" in surface.user_scripts[0]
        assert not [s for s in surface.user_scripts if "secret-a" in s]
        assert surface.loaded == [settings.dashboard_url] * 2

    @pytest.mark.asyncio
    async def test_sign_in_after_prompt_loads_dashboard(self, bridge, surface, settings):
        bridge.attach(surface, None)

        await bridge.on_session_changed(make_session())

        assert len(surface.user_scripts) == 1
        assert surface.loaded == [settings.dashboard_url]

    @pytest.mark.asyncio
    async def test_no_surface_only_remembers_session(self, bridge, surface):
        await bridge.on_session_changed(make_session())
        bridge.attach(surface, bridge._session)
        assert bridge.marker.last_injected_user_id == "user-a"


class TestMessages:
    """Tests for inbound page messages."""

    @pytest.mark.asyncio
    async def test_logout(self, bridge, sign_out):
        assert await bridge.handle_message({"type": "logout"}) is True
        assert sign_out.calls == 1

    @pytest.mark.asyncio
    async def test_json_string_body(self, bridge, sign_out):
        assert await bridge.handle_message('{"type": "logout"}') is True
        assert sign_out.calls == 1

    @pytest.mark.asyncio
    async def test_analytics_forwarded(self, bridge, analytics):
        handled = await bridge.handle_message({
            "type": "analytics",
            "payload": {"name": "dashboard_viewed", "properties": {"tab": "glucose"}},
        })
        assert handled
        assert events_named(analytics, "dashboard_viewed") == [{"tab": "glucose"}]

    @pytest.mark.asyncio
    async def test_analytics_without_name(self, bridge):
        assert await bridge.handle_message({"type": "analytics", "payload": {}}) is False

    @pytest.mark.asyncio
    async def test_health_auth_request(self, bridge, surface, health_store):
        health_store.totals[VitalType.STEPS] = 1000
        bridge.attach(surface, make_session())

        assert await bridge.handle_message({"type": "requestHealthKitAuth"}) is True

        assert health_store.requested_types
        assert len(surface.evaluated_containing("iosHealthData")) == 1

    @pytest.mark.asyncio
    async def test_health_auth_denied_is_handled(self, settings, analytics, sign_out, browser, surface):
        store = FakeHealthStore(grant=False)
        bridge = SessionBridge(settings, analytics, sign_out, HealthDataService(store), browser)
        bridge.attach(surface, make_session())

        assert await bridge.handle_message({"type": "requestHealthKitAuth"}) is True
        assert surface.evaluated_containing("iosHealthData") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        "not json",
        {"payload": {}},
        {"type": "somethingNew"},
        ["logout"],
    ])
    async def test_unrecognised(self, bridge, body):
        assert await bridge.handle_message(body) is False


class TestNavigationPolicy:
    """Tests for decide_navigation()."""

    @pytest.mark.parametrize("url", [
        "https://viiraa.com/dashboard",
        "https://app.viiraa.com/settings",
        "about:blank",
        "viiraa://callback",
    ])
    def test_allowed(self, bridge, browser, url):
        assert bridge.decide_navigation(url) is NavigationPolicy.ALLOW
        assert browser.opened == []

    def test_external_link_opens_browser(self, bridge, browser):
        url = "https://www.freestylelibre.com/help"
        assert bridge.decide_navigation(url) is NavigationPolicy.CANCEL
        assert browser.opened == [url]

    def test_lookalike_domain_is_external(self, bridge, browser):
        assert bridge.decide_navigation("https://notviiraa.com/") is NavigationPolicy.CANCEL
