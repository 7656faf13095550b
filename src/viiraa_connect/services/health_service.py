"""
Health data service.

Reads vitals from the on-device health store and derives the summaries and
statistics shown in the app and pushed into the web dashboard.
"""

import asyncio
import logging
from datetime import datetime, time, timezone
from typing import Optional

from ..exceptions import (
    HealthAuthorizationDeniedError,
    HealthQueryError,
    HealthStoreUnavailableError,
)
from ..models.health import (
    REQUIRED_READ_TYPES,
    GlucoseReading,
    GlucoseStatistics,
    HealthAuthorizationStatus,
    HealthSummary,
    VitalType,
    WeightReading,
    WeightTrend,
)
from .analytics import Events
from .base import AnalyticsCollector, BaseService, HealthStore


class HealthDataService(BaseService):
    """Health store access for the app and the web bridge."""

    def __init__(
        self,
        health_store: HealthStore,
        analytics: Optional[AnalyticsCollector] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(analytics=analytics, logger=logger)
        self._store = health_store
        self._authorized = False

    @property
    def is_available(self) -> bool:
        return self._store.is_available()

    @property
    def is_authorized(self) -> bool:
        """Authorized in this process, or glucose access already granted.

        Raises:
            HealthQueryError: If the store cannot report its status.
        """
        if not self.is_available:
            return False
        if self._authorized:
            return True
        try:
            return self._store.authorization_status(VitalType.GLUCOSE)
        except Exception as e:
            raise HealthQueryError(str(e), details={"vital": VitalType.GLUCOSE.value}) from e

    async def request_authorization(self) -> None:
        """
        Prompt for read access to every vital the app uses.

        Raises:
            HealthStoreUnavailableError: If the device has no health store.
            HealthAuthorizationDeniedError: If the prompt fails or is declined.
        """
        if not self.is_available:
            raise HealthStoreUnavailableError()

        read_types = set(REQUIRED_READ_TYPES) | {VitalType.GLUCOSE}
        try:
            granted = await self._store.request_authorization(read_types)
        except Exception as e:
            self._authorized = False
            self._track(Events.HEALTHKIT_AUTHORIZATION_FAILED, {"error": str(e)})
            raise HealthAuthorizationDeniedError() from e

        if not granted:
            self._authorized = False
            self._track(Events.HEALTHKIT_AUTHORIZATION_FAILED, {"error": "denied"})
            raise HealthAuthorizationDeniedError()

        self._authorized = True
        self._track(Events.HEALTHKIT_AUTHORIZED)

    def authorization_status(self) -> HealthAuthorizationStatus:
        if not self.is_available:
            return HealthAuthorizationStatus(False, False, False, False)
        status = self._store.authorization_status
        return HealthAuthorizationStatus(
            is_available=True,
            glucose_authorized=status(VitalType.GLUCOSE),
            weight_authorized=status(VitalType.WEIGHT),
            activity_authorized=all(
                status(v) for v in (VitalType.STEPS, VitalType.ACTIVE_ENERGY, VitalType.EXERCISE_TIME)
            ),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def latest_glucose(self) -> Optional[GlucoseReading]:
        sample = await self._store.fetch_latest(VitalType.GLUCOSE)
        return GlucoseReading.from_sample(sample) if sample else None

    async def latest_weight(self) -> Optional[WeightReading]:
        sample = await self._store.fetch_latest(VitalType.WEIGHT)
        return WeightReading.from_sample(sample) if sample else None

    async def fetch_today_summary(self, now: Optional[datetime] = None) -> HealthSummary:
        """
        Latest glucose and weight plus today's activity totals.

        Queries run concurrently; a failed query leaves its field empty.

        Raises:
            HealthStoreUnavailableError: If the device has no health store.
        """
        if not self.is_available:
            raise HealthStoreUnavailableError()

        now = now or datetime.now(timezone.utc)
        today = now.date()
        glucose, weight, steps, energy, exercise = await asyncio.gather(
            self.latest_glucose(),
            self.latest_weight(),
            self._store.fetch_daily_total(VitalType.STEPS, today),
            self._store.fetch_daily_total(VitalType.ACTIVE_ENERGY, today),
            self._store.fetch_daily_total(VitalType.EXERCISE_TIME, today),
            return_exceptions=True,
        )

        def ok(name, value):
            if isinstance(value, Exception):
                self.logger.warning(f"Health query for {name} failed: {value}")
                return None
            return value

        return HealthSummary(
            date=datetime.combine(today, time.min, tzinfo=now.tzinfo),
            glucose=ok("glucose", glucose),
            weight=ok("weight", weight),
            steps=ok("steps", steps),
            active_energy_kcal=ok("active energy", energy),
            exercise_minutes=ok("exercise time", exercise),
        )

    async def _history(self, vital: VitalType, start: datetime, end: datetime):
        if not self.is_available:
            raise HealthStoreUnavailableError()
        try:
            return await self._store.fetch_history(vital, start, end)
        except Exception as e:
            raise HealthQueryError(str(e), details={"vital": vital.value}) from e

    async def glucose_history(self, start: datetime, end: datetime) -> list[GlucoseReading]:
        samples = await self._history(VitalType.GLUCOSE, start, end)
        return [GlucoseReading.from_sample(s) for s in samples]

    async def glucose_statistics(self, start: datetime, end: datetime) -> GlucoseStatistics:
        return GlucoseStatistics.from_readings(await self.glucose_history(start, end), start, end)

    async def weight_trend(self, start: datetime, end: datetime) -> WeightTrend:
        samples = await self._history(VitalType.WEIGHT, start, end)
        readings = [WeightReading.from_sample(s) for s in samples]
        return WeightTrend.from_readings(readings, start, end)

    async def count_readings(self, vital: VitalType, start: datetime, end: datetime) -> int:
        return len(await self._history(vital, start, end))
