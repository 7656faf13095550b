"""Shared fixtures and fakes for the connector tests."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest

from viiraa_connect.config import Settings
from viiraa_connect.models.health import HealthSample, VitalType
from viiraa_connect.models.junction import SDKStatus
from viiraa_connect.models.session import AuthEvent, LocalUser, Session
from viiraa_connect.services.analytics import LoggingAnalytics


SANDBOX_KEY = "sk_us_test_0123456789abcdef"
PRODUCTION_KEY = "pk_us_live_0123456789abcdef"


def make_session(user_id: str = "user-a", access_token: str = "access-1", email: str = "a@example.com") -> Session:
    return Session(
        access_token=access_token,
        refresh_token=f"refresh-{access_token}",
        expires_in=3600,
        user=LocalUser(id=user_id, email=email),
    )


def event_names(analytics: LoggingAnalytics) -> List[str]:
    return [e.name for e in analytics.events]


def events_named(analytics: LoggingAnalytics, name: str) -> List[Dict[str, Any]]:
    return [e.properties for e in analytics.events if e.name == name]


# ============================================================================
# Device collaborators
# ============================================================================

class FakeSDK:
    """Device SDK double recording every call."""

    def __init__(self, signed_in: bool = False, user_id: Optional[str] = None):
        self.signed_in = signed_in
        self.user_id = user_id
        self.sign_in_tokens: List[str] = []
        self.sign_out_calls = 0
        self.sync_calls = 0
        self.connected_sources: List[str] = []
        self.sync_error: Optional[Exception] = None
        self.connect_source_error: Optional[Exception] = None
        self.sign_out_error: Optional[Exception] = None

    async def status(self) -> SDKStatus:
        return SDKStatus(signed_in=self.signed_in, user_id=self.user_id)

    async def sign_in(self, sign_in_token: str) -> None:
        self.sign_in_tokens.append(sign_in_token)
        self.signed_in = True

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        if self.sign_out_error:
            raise self.sign_out_error
        self.signed_in = False
        self.user_id = None

    async def sync_data(self) -> None:
        self.sync_calls += 1
        if self.sync_error:
            raise self.sync_error

    async def create_connected_source(self, provider: str) -> None:
        if self.connect_source_error:
            raise self.connect_source_error
        self.connected_sources.append(provider)


class FakeHealthStore:
    """In-memory health store."""

    def __init__(self, available: bool = True, grant: bool = True):
        self.available = available
        self.grant = grant
        self.authorization_error: Optional[Exception] = None
        self.status_error: Optional[Exception] = None
        self.authorized: Dict[VitalType, bool] = {}
        self.latest: Dict[VitalType, HealthSample] = {}
        self.history: Dict[VitalType, List[HealthSample]] = {}
        self.totals: Dict[VitalType, float] = {}
        self.failing: Dict[VitalType, Exception] = {}
        self.requested_types: List[set] = []

    def is_available(self) -> bool:
        return self.available

    async def request_authorization(self, read_types) -> bool:
        self.requested_types.append(set(read_types))
        if self.authorization_error:
            raise self.authorization_error
        if self.grant:
            for vital in read_types:
                self.authorized[vital] = True
        return self.grant

    def authorization_status(self, vital_type: VitalType) -> bool:
        if self.status_error:
            raise self.status_error
        return self.authorized.get(vital_type, False)

    async def fetch_latest(self, vital_type: VitalType) -> Optional[HealthSample]:
        if vital_type in self.failing:
            raise self.failing[vital_type]
        return self.latest.get(vital_type)

    async def fetch_history(self, vital_type: VitalType, start: datetime, end: datetime) -> List[HealthSample]:
        if vital_type in self.failing:
            raise self.failing[vital_type]
        return [s for s in self.history.get(vital_type, []) if start <= s.timestamp <= end]

    async def fetch_daily_total(self, vital_type: VitalType, day) -> float:
        if vital_type in self.failing:
            raise self.failing[vital_type]
        return self.totals.get(vital_type, 0.0)


class FakeSurface:
    """Embedded web view double."""

    def __init__(self):
        self.user_scripts: List[str] = []
        self.evaluated: List[str] = []
        self.loaded: List[str] = []
        self.sign_in_prompts = 0
        self.loading: List[bool] = []
        self.evaluate_error: Optional[Exception] = None

    def add_user_script(self, source: str) -> None:
        self.user_scripts.append(source)

    def remove_all_user_scripts(self) -> None:
        self.user_scripts.clear()

    async def evaluate_script(self, source: str) -> Any:
        if self.evaluate_error:
            raise self.evaluate_error
        self.evaluated.append(source)
        return None

    def load(self, url: str) -> None:
        self.loaded.append(url)

    def show_sign_in_prompt(self) -> None:
        self.sign_in_prompts += 1

    def set_loading(self, loading: bool) -> None:
        self.loading.append(loading)

    def evaluated_containing(self, marker: str) -> List[str]:
        return [s for s in self.evaluated if marker in s]


class FakeBrowser:
    def __init__(self):
        self.opened: List[str] = []

    def open(self, url: str) -> None:
        self.opened.append(url)


# ============================================================================
# Remote auth
# ============================================================================

class FakeAuthClient:
    """Remote auth double; ``emit`` plays the role of the vendor listener."""

    def __init__(self, session: Optional[Session] = None):
        self.session = session
        self.next_session: Optional[Session] = session
        self.sign_up_session: Optional[Session] = None
        self.error: Optional[Exception] = None
        self.sign_out_error: Optional[Exception] = None
        self.sign_out_calls = 0
        self.listeners: List[Any] = []

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        if self.error:
            raise self.error
        self.session = self.next_session
        return self.session

    async def sign_up(self, email: str, password: str) -> Optional[Session]:
        if self.error:
            raise self.error
        self.session = self.sign_up_session
        return self.session

    async def exchange_code_for_session(self, auth_code: str) -> Session:
        if self.error:
            raise self.error
        self.session = self.next_session
        return self.session

    async def get_session(self) -> Optional[Session]:
        if self.error:
            raise self.error
        return self.session

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        if self.sign_out_error:
            raise self.sign_out_error
        self.session = None

    def subscribe(self, listener):
        self.listeners.append(listener)

        def unsubscribe() -> None:
            self.listeners.remove(listener)

        return unsubscribe

    async def emit(self, event: AuthEvent, session: Optional[Session] = None) -> None:
        for listener in list(self.listeners):
            await listener(event, session)


# ============================================================================
# Timer
# ============================================================================

class FakeSyncTimer:
    """SyncTimer double driven by ``advance``.

    ``advance(seconds)`` fires each job once per elapsed interval, plus the
    immediate first tick when the job asked for one.
    """

    def __init__(self):
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.schedule_calls = 0
        self.is_running = False
        self.shutdown_calls = 0

    def schedule(self, job_id, func, interval_seconds, run_immediately=True) -> None:
        self.schedule_calls += 1
        self.jobs[job_id] = {
            "func": func,
            "interval": interval_seconds,
            "pending_immediate": run_immediately,
            "elapsed": 0.0,
        }
        self.is_running = True

    def cancel(self, job_id: str) -> None:
        self.jobs.pop(job_id, None)

    def is_scheduled(self, job_id: str) -> bool:
        return job_id in self.jobs

    def shutdown(self) -> None:
        self.shutdown_calls += 1
        self.is_running = False
        self.jobs.clear()

    async def advance(self, seconds: float = 0.0) -> int:
        """Simulate ``seconds`` passing; returns the number of ticks fired."""
        fired = 0
        for job in list(self.jobs.values()):
            if job["pending_immediate"]:
                job["pending_immediate"] = False
                await job["func"]()
                fired += 1
            job["elapsed"] += seconds
            while job["elapsed"] >= job["interval"]:
                job["elapsed"] -= job["interval"]
                await job["func"]()
                fired += 1
        return fired


# ============================================================================
# Junction HTTP
# ============================================================================

class FakeJunction:
    """Routes Junction API requests to canned responses through MockTransport."""

    def __init__(self):
        self.routes: Dict[tuple, Any] = {}
        self.requests: List[httpx.Request] = []

    @staticmethod
    def _path(request: httpx.Request) -> str:
        return request.url.path.removeprefix("/v2")

    def on(self, method: str, path: str, status: int = 200, json: Any = None, headers=None, handler=None):
        if handler is None:
            def handler(request, status=status, json=json, headers=headers):
                return httpx.Response(status, json=json, headers=headers)
        self.routes[(method, path)] = handler
        return self

    def __call__(self, request: httpx.Request):
        self.requests.append(request)
        route = self.routes.get((request.method, self._path(request)))
        if route is None:
            return httpx.Response(404, json={"detail": f"no route for {request.method} {self._path(request)}"})
        return route(request)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and self._path(r) == path]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def happy_path(self, client_user_id: str = "user-a", remote_user_id: str = "junction-a"):
        """Create, sign-in token and demo connections all succeed."""
        self.on("POST", "/user/", 200, {"user_id": remote_user_id, "client_user_id": client_user_id})
        self.on("GET", f"/user/resolve/{client_user_id}", 200, {"user_id": remote_user_id})
        self.on("POST", f"/user/{remote_user_id}/sign_in_token", 200, {"sign_in_token": "tok-123"})
        self.on("POST", "/link/connect/demo", 200, {"success": True})
        return self


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        base_url="https://viiraa.com",
        supabase_url="https://abcdefgh.supabase.co",
        supabase_anon_key="anon",
        junction_api_key=SANDBOX_KEY,
        sync_interval_seconds=3600,
        sync_grace_seconds=0,
        credential_store_path=tmp_path / "session.bin",
        error_log_path=tmp_path / "errors.log",
    )


@pytest.fixture
def analytics() -> LoggingAnalytics:
    return LoggingAnalytics()


@pytest.fixture
def sdk() -> FakeSDK:
    return FakeSDK()


@pytest.fixture
def health_store() -> FakeHealthStore:
    return FakeHealthStore()


@pytest.fixture
def surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture
def browser() -> FakeBrowser:
    return FakeBrowser()


@pytest.fixture
def auth_client() -> FakeAuthClient:
    return FakeAuthClient()


@pytest.fixture
def sync_timer() -> FakeSyncTimer:
    return FakeSyncTimer()


@pytest.fixture
def junction() -> FakeJunction:
    return FakeJunction()


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 11, 20, 15, 30, tzinfo=timezone.utc)
