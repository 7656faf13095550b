"""
Web session bridge.

Makes the embedded web dashboard start out signed in as the native user by
seeding its Supabase storage slot, and routes the dashboard's messages back
to native services.

Handshake (version 1):
    - storage key ``settings.auth_storage_key`` holds the session object
    - globals ``iosAuthenticated``, ``iosSession``, ``isIOSApp``, ``skipWebAuth``
    - custom event ``settings.web_auth_event_name`` with
      ``{session, authenticated, source, version}``
    - a replayed ``storage`` event for the storage key

Writing another client library's storage format is a compatibility risk:
a change to the dashboard's Supabase client can break it silently. The
custom event carries a version so the page can detect the contract.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from string import Template
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from ..config import Settings
from ..exceptions import HealthStoreError
from ..models.session import Session
from .analytics import Events
from .base import (
    AnalyticsCollector,
    BaseService,
    ExternalBrowser,
    SignOutCallback,
    WebSurface,
)
from .health_service import HealthDataService


HANDSHAKE_VERSION = 1

SOURCE_DOCUMENT_START = "ios-native"
SOURCE_POST_LOAD = "ios-native-postload"
SOURCE_ACCOUNT_SWITCH = "ios-native-account-switch"


SESSION_SCRIPT = Template("""(function() {
    var sessionData = $session;
    var storageKey = $storage_key;
    try {
        localStorage.setItem(storageKey, JSON.stringify(sessionData));
        window.iosAuthenticated = true;
        window.iosSession = sessionData;
        window.isIOSApp = true;
        window.skipWebAuth = true;
        window.dispatchEvent(new CustomEvent($event_name, {
            detail: {session: sessionData, authenticated: true, source: $source, version: $version}
        }));
        window.dispatchEvent(new StorageEvent('storage', {
            key: storageKey,
            newValue: JSON.stringify(sessionData),
            url: window.location.href,
            storageArea: localStorage
        }));
    } catch (e) {
        console.error('Native session injection failed:', e);
    }
})();""")


HEALTH_DATA_SCRIPT = Template("""(function() {
    try {
        window.iosHealthData = $data;
        window.dispatchEvent(new CustomEvent($event_name, {detail: window.iosHealthData}));
    } catch (e) {
        console.error('Native health data injection failed:', e);
    }
})();""")


# Sign-out lives in the native UI; the dashboard's own controls are hidden.
HIDE_LOGOUT_SCRIPT = """(function() {
    var words = ['log out', 'logout', 'sign out', 'signout'];
    var style = document.createElement('style');
    style.textContent = [
        'button[data-testid*="logout"]', 'button[data-testid*="signout"]',
        'button[data-testid*="sign-out"]', 'a[href*="logout"]', 'a[href*="signout"]',
        'a[href*="sign-out"]', '.logout-button', '.signout-button', '.sign-out-button',
        '#logout-button', '#signout-button', '#sign-out-button'
    ].join(',\\n') + ' { display: none !important; pointer-events: none !important; }';
    document.head.appendChild(style);

    function hideLogoutControls() {
        document.querySelectorAll('button, a').forEach(function(el) {
            var text = (el.textContent || '').toLowerCase();
            var label = (el.getAttribute('aria-label') || '').toLowerCase();
            if (words.some(function(w) { return text.includes(w) || label.includes(w); })) {
                el.style.display = 'none';
                el.style.pointerEvents = 'none';
            }
        });
    }

    hideLogoutControls();
    new MutationObserver(hideLogoutControls).observe(document.body, {childList: true, subtree: true});
})();"""


def build_session_payload(session: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Session object in the shape the dashboard's Supabase client stores."""
    now = now or datetime.now(timezone.utc)
    return {
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
        "expires_in": session.expires_in,
        "expires_at": int(now.timestamp()) + session.expires_in,
        "token_type": session.token_type,
        "user": {
            "id": session.user.id,
            "email": session.user.email,
            "aud": "authenticated",
            "role": "authenticated",
            "email_confirmed_at": now.isoformat(),
            "app_metadata": {},
            "user_metadata": {},
        },
    }


def build_session_script(
    session: Session,
    settings: Settings,
    source: str,
    now: Optional[datetime] = None,
) -> str:
    """JavaScript that seeds the page with ``session``. All values are JSON-encoded."""
    return SESSION_SCRIPT.substitute(
        session=json.dumps(build_session_payload(session, now)),
        storage_key=json.dumps(settings.auth_storage_key),
        event_name=json.dumps(settings.web_auth_event_name),
        source=json.dumps(source),
        version=json.dumps(HANDSHAKE_VERSION),
    )


def build_health_data_script(data: Dict[str, Any], settings: Settings) -> str:
    return HEALTH_DATA_SCRIPT.substitute(
        data=json.dumps(data),
        event_name=json.dumps(settings.web_health_event_name),
    )


class NavigationPolicy(str, Enum):
    ALLOW = "allow"
    CANCEL = "cancel"


class MessageType(str, Enum):
    """Messages the dashboard may post to native code."""
    LOGOUT = "logout"
    NAVIGATE = "navigate"
    ANALYTICS = "analytics"
    ERROR = "error"
    REQUEST_HEALTH_DATA = "requestHealthData"
    REQUEST_HEALTH_AUTH = "requestHealthKitAuth"


@dataclass
class InjectedSessionMarker:
    """Which user the current surface was last seeded with."""
    last_injected_user_id: Optional[str] = None


class SessionBridge(BaseService):
    """
    Keeps one embedded dashboard surface in step with the native session.

    Usage:
        bridge = SessionBridge(settings, analytics, manager.sign_out, health, browser)
        bridge.attach(surface, manager.session)
        # surface delegate callbacks:
        bridge.on_navigation_started()
        await bridge.on_navigation_finished()
        await bridge.handle_message(body)
    """

    def __init__(
        self,
        settings: Settings,
        analytics: Optional[AnalyticsCollector],
        sign_out: SignOutCallback,
        health: HealthDataService,
        browser: ExternalBrowser,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(analytics=analytics, logger=logger)
        self.settings = settings
        self._sign_out = sign_out
        self._health = health
        self._browser = browser

        self._surface: Optional[WebSurface] = None
        self._session: Optional[Session] = None
        self.marker = InjectedSessionMarker()
        # User the post-load injection already ran for on this surface
        self._post_load_user_id: Optional[str] = None

    @property
    def surface(self) -> Optional[WebSurface]:
        return self._surface

    # ------------------------------------------------------------------
    # Surface lifecycle
    # ------------------------------------------------------------------

    def attach(self, surface: WebSurface, session: Optional[Session]) -> None:
        """Take over a new surface instance."""
        self._surface = surface
        self._session = session
        self.marker = InjectedSessionMarker()
        self._post_load_user_id = None

        if session is None:
            self.logger.info("No session; showing native sign-in prompt")
            surface.show_sign_in_prompt()
            return
        self._install_session(session)
        surface.load(self.settings.dashboard_url)

    def detach(self) -> None:
        self._surface = None
        self.marker = InjectedSessionMarker()
        self._post_load_user_id = None

    def _install_session(self, session: Session) -> None:
        """Register the document-start script for ``session``, replacing any earlier one."""
        self._surface.remove_all_user_scripts()
        self._surface.add_user_script(
            build_session_script(session, self.settings, SOURCE_DOCUMENT_START)
        )
        self.marker.last_injected_user_id = session.user_id
        self.logger.info(f"Session script installed for user {session.user_id}")

    async def _evaluate(self, script: str, label: str) -> bool:
        if self._surface is None:
            return False
        try:
            await self._surface.evaluate_script(script)
            return True
        except Exception as e:
            self.logger.warning(f"Script evaluation failed ({label}): {e}")
            return False

    # ------------------------------------------------------------------
    # Navigation callbacks
    # ------------------------------------------------------------------

    def on_navigation_started(self) -> None:
        if self._surface is not None:
            self._surface.set_loading(True)

    async def on_navigation_finished(self) -> None:
        if self._surface is None:
            return
        self._surface.set_loading(False)

        session = self._session
        if session is not None and self._post_load_user_id != session.user_id:
            # Set before evaluating: the page may navigate again in response
            self._post_load_user_id = session.user_id
            script = build_session_script(session, self.settings, SOURCE_POST_LOAD)
            if await self._evaluate(script, "post-load session"):
                self._track(Events.WEB_SESSION_INJECTED, {"source": SOURCE_POST_LOAD})
        elif session is not None:
            self.logger.debug("Post-load injection already done for this user")

        await self._evaluate(HIDE_LOGOUT_SCRIPT, "hide logout")

        try:
            authorized = self._health.is_authorized
        except HealthStoreError as e:
            self.logger.warning(f"Health authorization status unavailable: {e}")
            authorized = False
        if authorized:
            await self.push_health_data()

    def on_navigation_failed(self, error: Any) -> None:
        if self._surface is not None:
            self._surface.set_loading(False)
        self.logger.warning(f"Dashboard navigation failed: {error}")

    # ------------------------------------------------------------------
    # Session changes
    # ------------------------------------------------------------------

    async def on_session_changed(self, session: Optional[Session]) -> None:
        """
        Follow the native session.

        A refreshed session for the same user needs nothing: the page's own
        client refreshes tokens. A different user is injected exactly once.
        """
        self._session = session
        if self._surface is None:
            return

        if session is None:
            self._surface.remove_all_user_scripts()
            self.marker = InjectedSessionMarker()
            self._post_load_user_id = None
            self._surface.show_sign_in_prompt()
            return

        if self.marker.last_injected_user_id is None:
            self._install_session(session)
            self._surface.load(self.settings.dashboard_url)
            return

        if self.marker.last_injected_user_id == session.user_id:
            return

        self.logger.info(f"User changed; re-injecting session for {session.user_id}")
        self._install_session(session)
        self._post_load_user_id = session.user_id
        script = build_session_script(session, self.settings, SOURCE_ACCOUNT_SWITCH)
        if await self._evaluate(script, "account switch"):
            self._track(Events.WEB_SESSION_INJECTED, {"source": SOURCE_ACCOUNT_SWITCH})

    # ------------------------------------------------------------------
    # Health data
    # ------------------------------------------------------------------

    async def push_health_data(self) -> bool:
        """Push today's summary into the page. Failures are logged."""
        try:
            summary = await self._health.fetch_today_summary()
        except HealthStoreError as e:
            self.logger.warning(f"Health summary unavailable: {e}")
            return False

        data = summary.to_dict()
        if not data:
            self.logger.debug("No health data to push")
            return False
        if not await self._evaluate(build_health_data_script(data, self.settings), "health data"):
            return False
        self._track(Events.HEALTHKIT_DATA_INJECTED, {"data_types": sorted(data)})
        return True

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    async def handle_message(self, body: Any) -> bool:
        """
        Route a ``{type, payload}`` message from the page.

        Returns:
            True when the message was recognised and handled.
        """
        if isinstance(body, (str, bytes)):
            try:
                body = json.loads(body)
            except ValueError:
                self.logger.warning("Ignoring malformed web message")
                return False
        if not isinstance(body, dict) or not isinstance(body.get("type"), str):
            self.logger.warning(f"Ignoring web message without a type: {body!r:.200}")
            return False

        try:
            message_type = MessageType(body["type"])
        except ValueError:
            self.logger.info(f"Unknown web message type: {body['type']}")
            return False
        payload = body.get("payload")

        if message_type is MessageType.LOGOUT:
            try:
                await self._sign_out()
            except Exception as e:
                self.logger.warning(f"Sign-out requested by dashboard failed: {e}")
        elif message_type is MessageType.ANALYTICS:
            if not isinstance(payload, dict) or not isinstance(payload.get("name"), str):
                self.logger.warning("Ignoring analytics message without a name")
                return False
            properties = payload.get("properties")
            self._track(payload["name"], properties if isinstance(properties, dict) else {})
        elif message_type is MessageType.REQUEST_HEALTH_DATA:
            await self.push_health_data()
        elif message_type is MessageType.REQUEST_HEALTH_AUTH:
            try:
                await self._health.request_authorization()
            except HealthStoreError as e:
                self.logger.warning(f"Health authorization from dashboard failed: {e}")
                return True
            await self.push_health_data()
        elif message_type is MessageType.NAVIGATE:
            self.logger.info(f"Dashboard navigate request: {payload}")
        elif message_type is MessageType.ERROR:
            self.logger.warning(f"Dashboard error: {payload}")
        return True

    # ------------------------------------------------------------------
    # Navigation policy
    # ------------------------------------------------------------------

    def decide_navigation(self, url: str) -> NavigationPolicy:
        """Keep product pages in the surface; open other web links externally."""
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return NavigationPolicy.ALLOW

        host = parsed.hostname.lower()
        domain = self.settings.product_domain.lower()
        if host == domain or host.endswith("." + domain):
            return NavigationPolicy.ALLOW

        self.logger.info(f"Opening external link in browser: {host}")
        self._browser.open(url)
        return NavigationPolicy.CANCEL
