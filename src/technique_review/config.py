from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DB_PATH = ".data/review.sqlite3"
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 5.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数から読み込まれる復習スケジューラの設定クラス。
    - review_db_path: 既定ストアの SQLite ファイル
    - default_ease_factor: 新規キュー項目の初期 ease
    - review_xp_award: 復習成功時に付与する XP
    """

    # --- 永続化 ---
    review_db_path: str = Field(
        default=DEFAULT_DB_PATH,
        description="Path to review SQLite database / 復習用SQLite DBパス",
    )
    review_db_timeout_ms: int = Field(
        default=10000,
        ge=1,
        description="Busy timeout for persistence calls (ms) / 永続化呼出しのタイムアウト(ms)",
    )

    # --- スケジューリング ---
    default_ease_factor: float = Field(
        default=2.5,
        description="Initial ease factor for new queue items / 新規項目の初期 ease",
    )
    upcoming_window_days: int = Field(
        default=7,
        ge=1,
        description="Horizon of the upcoming reviews listing (days) / 今後の復習一覧の期間(日)",
    )

    # --- XP ---
    review_xp_award: int = Field(
        default=10,
        ge=0,
        description="XP granted for a successful review / 復習成功時の付与XP",
    )
    award_xp_on_failed_review: bool = Field(
        default=False,
        description="Also grant XP when the review was forgotten / 失敗時にもXPを付与するか",
    )

    log_level: str = Field(
        default="INFO",
        description="Log level for the stdlib root logger / ログレベル",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("default_ease_factor", mode="after")
    @classmethod
    def _validate_default_ease(cls, value: float) -> float:
        """Reject an initial ease outside the clamping range.

        ease は常に [1.3, 5.0] に収まる前提でスケジューラが動くため、
        初期値もこの範囲に限定する。
        """

        if not MIN_EASE_FACTOR <= value <= MAX_EASE_FACTOR:
            raise ValueError(
                f"default_ease_factor must be within [{MIN_EASE_FACTOR}, {MAX_EASE_FACTOR}], got {value}"
            )
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, raw: object) -> object:
        if isinstance(raw, str):
            return raw.strip().upper() or "INFO"
        return raw


settings = Settings()
