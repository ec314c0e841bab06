# chess_review/containers.py
"""
Defines the Dependency Injection (DI) container for the application.

This module uses the `punq` library to manage the creation and wiring of the
review components. The engine channels are started outside the container
(their lifecycle is an async context) and registered as ready instances.
"""

import punq

from chess_review.config.settings import Settings
from chess_review.core.difficulty import DifficultyProfileResolver
from chess_review.core.move_classifier import JudgementClassifier
from chess_review.orchestration.game_session import GameSession
from chess_review.output.report_generator import ReportGenerator
from chess_review.services.engine_channels import EngineChannels
from chess_review.services.rules_engine import ChessRulesEngine


def get_container(settings: Settings, channels: EngineChannels) -> punq.Container:
    """
    Initializes and returns a DI container for one application run.
    """
    container = punq.Container()

    # Register instances that are created outside the container's control.
    container.register(Settings, instance=settings)
    container.register(EngineChannels, instance=channels)

    container.register(
        DifficultyProfileResolver,
        factory=lambda: DifficultyProfileResolver(settings.difficulty),
        scope=punq.Scope.singleton,
    )
    container.register(
        JudgementClassifier,
        factory=lambda: JudgementClassifier(settings.evaluation),
        scope=punq.Scope.singleton,
    )
    # A fresh board per session; never shared.
    container.register(ChessRulesEngine, factory=lambda: ChessRulesEngine())
    container.register(ReportGenerator, factory=lambda: ReportGenerator(settings.evaluation))

    def create_game_session() -> GameSession:
        if channels.live is None or channels.review is None:
            raise RuntimeError("Engine channels must be started before a game session is created.")
        return GameSession(
            settings=settings,
            rules=container.resolve(ChessRulesEngine),
            resolver=container.resolve(DifficultyProfileResolver),
            classifier=container.resolve(JudgementClassifier),
            live_channel=channels.live,
            review_channel=channels.review,
        )

    container.register(GameSession, factory=create_game_session)

    return container
