"""Shared service accessors for DocketCC components.

Entrypoints (CLI, scheduler jobs, web app) get their wired components from
here. Components themselves only ever see what is passed to their
constructors.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from .config import Config, config
from .database import Database
from .enrichment.enricher import FilingEnricher
from .filing_store import FilingStore
from .monitoring import SystemHealth
from .notifications.delivery import DeliveryWorker
from .notifications.dispatcher import NotificationDispatcher
from .notifications.emailer import ResendEmailer
from .notifications.queue import NotificationQueue
from .pipeline import MonitoringPipeline
from .registry import DocketRegistry
from .seeding import SeedService
from .sources.ecfs import ECFSClient
from .subscriptions import SubscriptionManager
from .system_log import SystemLog
from .users import UserStore


@dataclass
class Services:
    """Every pipeline component, wired against one database and config."""

    config: Config
    db: Database
    system_log: SystemLog
    registry: DocketRegistry
    source: ECFSClient
    filing_store: FilingStore
    users: UserStore
    subscriptions: SubscriptionManager
    queue: NotificationQueue
    dispatcher: NotificationDispatcher
    enricher: Optional[FilingEnricher]
    seeds: SeedService
    pipeline: MonitoringPipeline
    delivery: DeliveryWorker
    health: SystemHealth


def build_services(cfg: Config, db: Optional[Database] = None) -> Services:
    """Construct and wire all components from a configuration."""
    db = db or Database(cfg.database_path)
    system_log = SystemLog(db)
    registry = DocketRegistry(
        db,
        health_error_threshold=cfg.get("monitoring.health_error_threshold", 3),
        health_stale_hours=cfg.get("monitoring.health_stale_hours", 4),
    )
    source = ECFSClient.from_config(cfg)
    filing_store = FilingStore(db, system_log)
    users = UserStore(db, trial_days=cfg.get("tiers.trial_days", 14))
    subscriptions = SubscriptionManager(
        db,
        users,
        registry,
        max_subscriptions_free=cfg.get("tiers.max_subscriptions_free", 1),
        max_subscriptions_paid=cfg.get("tiers.max_subscriptions_paid", 25),
    )
    queue = NotificationQueue(db, lease_seconds=cfg.get("delivery.lease_seconds", 300))
    dispatcher = NotificationDispatcher(
        queue,
        subscriptions,
        users,
        filing_store,
        system_log,
        app_url=cfg.app_url,
        tz_name=cfg.timezone,
        max_notifications_per_run=cfg.get("notifications.max_notifications_per_run", 100),
        max_filings_per_notification=cfg.get("notifications.max_filings_per_notification", 25),
    )
    enricher = None
    if cfg.get("enrichment.enabled", True):
        enricher = FilingEnricher.from_config(cfg, filing_store, system_log)
    seeds = SeedService(
        subscriptions, filing_store, queue, source, system_log, enricher=enricher, app_url=cfg.app_url
    )
    pipeline = MonitoringPipeline(
        registry,
        source,
        filing_store,
        dispatcher,
        users,
        seeds,
        system_log,
        enricher=enricher,
        tz_name=cfg.timezone,
        deluge_threshold=cfg.get("ecfs.deluge_window", 7),
        reconcile_hours=cfg.get("notifications.reconcile_hours", 24),
    )
    delivery = DeliveryWorker(
        queue, users, subscriptions, ResendEmailer.from_config(cfg), system_log, app_url=cfg.app_url
    )
    health = SystemHealth(db, source, filing_store, system_log)
    return Services(
        config=cfg,
        db=db,
        system_log=system_log,
        registry=registry,
        source=source,
        filing_store=filing_store,
        users=users,
        subscriptions=subscriptions,
        queue=queue,
        dispatcher=dispatcher,
        enricher=enricher,
        seeds=seeds,
        pipeline=pipeline,
        delivery=delivery,
        health=health,
    )


def get_config() -> Config:
    """Return application configuration instance."""
    return config


@lru_cache
def get_services() -> Services:
    """Return the process-wide wired services."""
    return build_services(config)


def get_db() -> Database:
    """Return database service instance."""
    return get_services().db
