"""Engine container: builds and wires the proximity and SOS components."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import sessionmaker

from vicinity.core.config import Settings, settings as default_settings
from vicinity.core.locks import KeyedLocks
from vicinity.core.ws_manager import ConnectionManager
from vicinity.services.directory import UserDirectory
from vicinity.services.dispatcher import AlertDispatcher
from vicinity.services.location_store import LocationStore
from vicinity.services.nearby_channel import NearbyBroadcastChannel
from vicinity.services.notifier import OfflineNotifier, build_notifier
from vicinity.services.proximity_index import ProximityAudience, ProximityIndex
from vicinity.services.proximity_monitor import ProximityMonitor
from vicinity.services.rate_limiter import AlertRateLimiter
from vicinity.services.relationships import RelationshipDirectory
from vicinity.services.safety_timer import SafetyTimerWatchdog
from vicinity.services.settings_service import SettingsStore
from vicinity.services.sos_machine import SOSStateMachine
from vicinity.services.trusted_contacts import TrustedContactRegistry
from vicinity.services.triggers import DistressTriggerSource

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    config: Settings
    scheduler: BackgroundScheduler
    connections: ConnectionManager
    locks: KeyedLocks
    locations: LocationStore
    settings_store: SettingsStore
    relationships: RelationshipDirectory
    directory: UserDirectory
    contacts: TrustedContactRegistry
    index: ProximityIndex
    limiter: AlertRateLimiter
    notifier: OfflineNotifier
    dispatcher: AlertDispatcher
    sos: SOSStateMachine
    timers: SafetyTimerWatchdog
    nearby: NearbyBroadcastChannel
    monitor: ProximityMonitor
    distress: DistressTriggerSource
    executor: ThreadPoolExecutor | None = None

    def start(self) -> None:
        """Warm the index, restore pending timers and start background jobs."""
        self.monitor.warm()
        restored_sos = self.sos.restore()
        restored_timers = self.timers.restore()

        self.scheduler.add_job(
            self.monitor.flush,
            trigger=IntervalTrigger(seconds=self.config.proximity_recompute_seconds),
            id="proximity-flush",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            self.monitor.expire_stale,
            trigger=IntervalTrigger(seconds=self.config.location_sweep_seconds),
            id="location-expire",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            self.nearby.purge_expired,
            trigger=IntervalTrigger(minutes=5),
            id="nearby-purge",
            replace_existing=True,
            coalesce=True,
        )
        self.scheduler.add_job(
            self.limiter.evict_expired,
            trigger=IntervalTrigger(minutes=10),
            id="alert-state-evict",
            replace_existing=True,
            coalesce=True,
        )
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info(
            "Engine started: restored_sos=%s restored_timers=%s",
            restored_sos,
            restored_timers,
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        if self.executor is not None:
            self.executor.shutdown(wait=False)
        logger.info("Engine stopped")


def build_engine(
    session_factory: sessionmaker,
    *,
    config: Settings | None = None,
    scheduler: BackgroundScheduler | None = None,
    notifier: OfflineNotifier | None = None,
    connections: ConnectionManager | None = None,
    clock: Callable[[], float] = time.monotonic,
    rng: random.Random | None = None,
) -> Engine:
    """Wire every component against one session factory and one scheduler."""
    config = config or default_settings
    scheduler = scheduler or BackgroundScheduler(timezone="UTC")
    connections = connections or ConnectionManager()
    notifier = notifier or build_notifier(
        config.notification_gateway_url,
        token=config.notification_gateway_token,
        timeout=config.notification_timeout_seconds,
    )
    locks = KeyedLocks()
    executor = None
    if config.notification_workers > 0:
        executor = ThreadPoolExecutor(max_workers=config.notification_workers, thread_name_prefix="sos-offline")

    locations = LocationStore(session_factory, stale_after=timedelta(minutes=config.location_stale_minutes))
    settings_store = SettingsStore(session_factory)
    relationships = RelationshipDirectory(session_factory)
    directory = UserDirectory(session_factory)
    contacts = TrustedContactRegistry(
        session_factory,
        limit=config.trusted_contacts_limit,
        require_mutual=config.trusted_visibility_requires_mutual,
    )
    index = ProximityIndex(
        cell_degrees=config.proximity_cell_degrees,
        audience=ProximityAudience(relationships, contacts, settings_store),
    )
    limiter = AlertRateLimiter(
        settings_store.alert_frequency,
        cooldown_seconds=config.alert_cooldown_seconds,
        periodic_seconds=config.alert_periodic_seconds,
        ttl_seconds=config.alert_state_ttl_seconds,
        clock=clock,
        rng=rng,
    )
    dispatcher = AlertDispatcher(connections, notifier, settings_store)
    sos = SOSStateMachine(
        session_factory,
        locks,
        locations,
        contacts,
        dispatcher,
        directory,
        scheduler=scheduler,
        arming_seconds=config.sos_arming_seconds,
        executor=executor,
        offline_timeout=config.notification_deadline_seconds,
    )
    timers = SafetyTimerWatchdog(session_factory, locks, sos, scheduler)
    nearby = NearbyBroadcastChannel(
        session_factory,
        locations,
        index,
        relationships,
        contacts,
        settings_store,
        directory,
        dispatcher,
        retention=timedelta(minutes=config.nearby_message_retention_minutes),
        max_radius_m=config.nearby_message_max_radius_m,
    )
    monitor = ProximityMonitor(
        locations,
        index,
        limiter,
        settings_store,
        contacts,
        directory,
        dispatcher,
        max_radius_m=config.proximity_max_radius_m,
    )
    return Engine(
        config=config,
        scheduler=scheduler,
        connections=connections,
        locks=locks,
        locations=locations,
        settings_store=settings_store,
        relationships=relationships,
        directory=directory,
        contacts=contacts,
        index=index,
        limiter=limiter,
        notifier=notifier,
        dispatcher=dispatcher,
        sos=sos,
        timers=timers,
        nearby=nearby,
        monitor=monitor,
        distress=DistressTriggerSource("api", sos.handle),
        executor=executor,
    )
