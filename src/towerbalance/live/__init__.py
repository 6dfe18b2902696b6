from .bot import BotRunResult, GameBot
from .client import GamePlayClient, GameSessionError, default_game_url

__all__ = [
    "BotRunResult",
    "GameBot",
    "GamePlayClient",
    "GameSessionError",
    "default_game_url",
]
