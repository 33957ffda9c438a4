from __future__ import annotations

from dataclasses import dataclass

from ttslib.application.module_loader import SpeakerLoader
from ttslib.config import AppConfig
from ttslib.infrastructure.audio.player import AudioPlayer
from ttslib.infrastructure.engines.registry import builtin_modules
from ttslib.utils.logger import Logger


@dataclass(frozen=True)
class AppContainer:
    config: AppConfig
    logger: Logger
    player: AudioPlayer
    loader: SpeakerLoader


def build_container(
    config: AppConfig,
    *,
    logger: Logger | None = None,
    player: AudioPlayer | None = None,
    loader: SpeakerLoader | None = None,
    locale: str = "en-US",
) -> AppContainer:
    logger = logger or Logger(log_dir=config.log_dir)
    player = player or AudioPlayer(sample_rate=config.sample_rate)

    loader = loader or SpeakerLoader(
        config.modules_root,
        logger=logger,
        builtin_modules=builtin_modules(logger=logger, player=player, locale=locale),
    )

    return AppContainer(
        config=config,
        logger=logger,
        player=player,
        loader=loader,
    )
