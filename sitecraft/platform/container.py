"""
Service Container

Built once per process (FastAPI lifespan, Celery worker_process_init) and
handed to the components. Nothing else in the pipeline creates engines,
queues or clients.
"""
import time
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from sitecraft.features.analysis.services.analyzers import AnalyzerRegistry, default_registry
from sitecraft.features.analysis.services.cancellation import cancel_analysis
from sitecraft.features.analysis.services.capture_service import AssetCapturer, SeleniumAssetCapturer
from sitecraft.features.analysis.services.completion_aggregator import CompletionAggregator, CompletionNotifier
from sitecraft.features.analysis.services.fetcher import Fetcher
from sitecraft.features.analysis.services.intake import Intake
from sitecraft.features.analysis.services.job_lifecycle import JobLifecycle
from sitecraft.features.analysis.services.quota import DailyAnalysisQuota, QuotaPolicy
from sitecraft.features.analysis.services.rule_catalog import RuleCatalog
from sitecraft.features.analysis.services.status_store import StatusStore
from sitecraft.platform.config import Settings, get_settings
from sitecraft.platform.db.session import create_db_engine, create_session_factory
from sitecraft.platform.queue.job_queue import CeleryJobQueue, JobQueue
from sitecraft.platform.storage.asset_store import AssetStore, FileSystemAssetStore
from sitecraft.platform.utils.retry import RetryPolicy


@dataclass
class ServiceContainer:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    status_store: StatusStore
    asset_store: AssetStore
    job_queue: JobQueue
    rule_catalog: RuleCatalog
    notifier: CompletionNotifier
    quota_policy: QuotaPolicy
    capturer: AssetCapturer
    analyzers: AnalyzerRegistry
    aggregator: CompletionAggregator
    intake: Intake
    fetcher: Fetcher
    lifecycle: JobLifecycle

    def cancel_analysis(self, analysis_id: str) -> bool:
        return cancel_analysis(self.status_store, self.notifier, analysis_id)

    def close(self) -> None:
        self.engine.dispose()


def build_container(
    settings: Optional[Settings] = None,
    celery_app=None,
    *,
    job_queue: Optional[JobQueue] = None,
    notifier: Optional[CompletionNotifier] = None,
    capturer: Optional[AssetCapturer] = None,
    quota_policy: Optional[QuotaPolicy] = None,
    asset_store: Optional[AssetStore] = None,
    analyzers: Optional[AnalyzerRegistry] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ServiceContainer:
    """Wire every component. Keyword overrides replace the external collaborators (tests, tooling)."""
    settings = settings or get_settings()

    engine = create_db_engine(settings)
    session_factory = create_session_factory(engine)
    status_store = StatusStore(
        session_factory,
        RetryPolicy(max_attempts=settings.STORE_MAX_ATTEMPTS, delay_seconds=settings.STORE_BACKOFF_SECONDS),
    )

    if job_queue is None:
        if celery_app is None:
            from sitecraft.platform.celery_app import celery_app
        job_queue = CeleryJobQueue(celery_app)

    if notifier is None:
        from sitecraft.features.analysis.workers.event_publisher import RedisCompletionNotifier

        notifier = RedisCompletionNotifier.from_url(settings.REDIS_URL, settings.REDIS_SOCKET_TIMEOUT)

    capturer = capturer or SeleniumAssetCapturer(
        page_load_timeout=settings.CAPTURE_TIMEOUT_SECONDS,
        chromedriver_path=settings.CHROMEDRIVER_PATH,
    )
    asset_store = asset_store or FileSystemAssetStore(settings.ASSET_STORE_ROOT)
    quota_policy = quota_policy or DailyAnalysisQuota(status_store, settings.DAILY_ANALYSIS_LIMIT)
    analyzers = analyzers or default_registry()

    rule_catalog = RuleCatalog(status_store)
    aggregator = CompletionAggregator(status_store, notifier)

    return ServiceContainer(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        status_store=status_store,
        asset_store=asset_store,
        job_queue=job_queue,
        rule_catalog=rule_catalog,
        notifier=notifier,
        quota_policy=quota_policy,
        capturer=capturer,
        analyzers=analyzers,
        aggregator=aggregator,
        intake=Intake(status_store, job_queue, quota_policy, settings.DEFAULT_MODULES),
        fetcher=Fetcher(
            status_store,
            asset_store,
            job_queue,
            capturer,
            aggregator,
            RetryPolicy(max_attempts=settings.FETCH_MAX_ATTEMPTS, delay_seconds=settings.FETCH_BACKOFF_SECONDS),
            sleep=sleep,
        ),
        lifecycle=JobLifecycle(
            status_store,
            asset_store,
            rule_catalog,
            aggregator,
            analyzers,
            timeout_seconds=settings.ANALYZER_TIMEOUT_SECONDS,
        ),
    )
