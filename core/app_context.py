from dataclasses import dataclass
from typing import Callable, Optional

from core.config_loader import AppConfig
from core.events import EventRecorder
from core.payments import AdapterRegistry, SettlementEngine, build_adapter_registry
from core.scorer import ScoringEngine
from core.shortlist import FollowUpDetector, PricingCalculator, ShortlistStateMachine
from core.utils import utcnow
from database.repository import BrokerRepository
from notification.dispatcher import ShortlistNotifier
from notification.service import NotificationService


@dataclass
class AppContext:
    """Application context container that holds all wired dependencies.

    Stateless collaborators (scoring engine, payment adapters, notification
    delivery) are built once; repository-bound ones are created per unit of
    work by state_machine(repo). DB access should be obtained via
    shortlist_uow() for each operation.
    """
    config: AppConfig
    scorer: ScoringEngine
    adapters: AdapterRegistry
    follow_up: FollowUpDetector
    pricing: PricingCalculator
    notification_service: Optional[NotificationService] = None
    clock: Callable = utcnow

    @classmethod
    def build(cls, config: AppConfig, session_factory=None) -> "AppContext":
        """Build an AppContext from config.

        Args:
            config: Loaded application configuration
            session_factory: Session factory the notification worker task
                records delivery outcomes with (defaults to SessionLocal)

        Returns:
            Fully wired AppContext instance (no DB session attached)
        """
        notification_service = None
        if config.notifications and config.notifications.enabled:
            notification_service = NotificationService(config.notifications, session_factory=session_factory)

        return cls(
            config=config,
            scorer=ScoringEngine(config.scoring),
            adapters=build_adapter_registry(config.payments),
            follow_up=FollowUpDetector(config.follow_up),
            pricing=PricingCalculator(config.pricing),
            notification_service=notification_service,
        )

    def state_machine(self, repo: BrokerRepository) -> ShortlistStateMachine:
        """Wire a state machine onto one unit of work's repositories."""
        events = EventRecorder(repo.events, clock=self.clock)
        settlement = SettlementEngine(
            repo.payments, events, self.adapters, config=self.config.payments, clock=self.clock
        )
        notifier = ShortlistNotifier(
            repo.emails, repo.companies, repo.outbox, config=self.config.notifications, clock=self.clock
        )
        return ShortlistStateMachine(
            repo,
            scorer=self.scorer,
            settlement=settlement,
            events=events,
            notifier=notifier,
            follow_up=self.follow_up,
            pricing=self.pricing,
            config=self.config,
            clock=self.clock,
        )
