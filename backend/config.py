from pydantic_settings import BaseSettings
from typing import List

DEFAULT_SECRET_KEY = "dev_secret"

class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql://localhost/pinoy_pool"
    REDIS_URL: str = "redis://localhost:6379"
    TELEGRAM_BOT_TOKEN: str = ""
    SECRET_KEY: str = DEFAULT_SECRET_KEY
    ALLOWED_ORIGINS: str = "https://web.telegram.org,http://localhost:3000"
    DEV_MODE: bool = False
    LOG_LEVEL: str = "INFO"

    # Wagers
    MIN_BET: int = 1
    MAX_BET: int = 1_000_000
    WIN_MULTIPLIER: float = 1.8     # 10% house cut per side of a 2-player pot
    WIN_TROPHIES: int = 25
    WIN_XP: int = 50
    LOSS_TROPHIES: int = -20
    LOSS_XP: int = 15
    REQUIRE_DECLARED_RESULT: bool = False
    MATCH_TTL_SECONDS: int = 3600
    EXPIRY_SWEEP_SECONDS: int = 60

    # Rewards
    AD_REWARD: int = 50
    AD_REWARD_COOLDOWN_SECONDS: int = 30
    BALL_REWARD: int = 10
    BALL_XP: int = 10
    PRACTICE_BALL_REWARD: int = 2
    PRACTICE_BALL_XP: int = 2
    MAX_BALLS_PER_GAME: int = 15    # object balls on a full rack

    TX_MAX_ATTEMPTS: int = 5
    INIT_DATA_MAX_AGE: int = 86400
    SESSION_TTL_SECONDS: int = 86400 * 7
    RATE_LIMIT_PER_MINUTE: int = 30

    @property
    def origins_list(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    def check_production_safe(self):
        # SECRET_KEY signs session and referee tokens
        if not self.DEV_MODE and self.SECRET_KEY in ("", DEFAULT_SECRET_KEY):
            raise RuntimeError("SECRET_KEY must be set when DEV_MODE is off")

    class Config:
        env_file = ".env"

settings = Settings()
