from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # === Storage ===
    db_path: str = ""  # 空なら data/colorwager.db

    # === Rounds ===
    default_game_mode: str = "quick"  # blitz | quick | classic | extended
    first_sequence_number: int = 10001
    betting_close_margin_sec: int = 5  # window_end の N 秒前でベット締切

    # === Timer coordinator ===
    tick_interval_sec: float = 1.0
    manual_poll_interval_sec: float = 5.0  # manual 制御中の再ポーリング間隔
    completion_alert_after: int = 3  # 連続 N 回の完了失敗でアラート

    # === Store retry ===
    store_retry_attempts: int = 3
    store_retry_base_delay_sec: float = 0.2

    # === Health ===
    stuck_round_grace_sec: int = 30
    min_disk_mb: int = 100

    # === Telegram (optional) ===
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    # === Logging ===
    structured_logging: bool = False


settings = Settings()
