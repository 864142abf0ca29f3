from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PICKROUTE_",
        env_file=".env",
        case_sensitive=False,
    )

    # 数据库配置
    database_url: str = "duckdb://./data/pickroute.duckdb"
    db_lock_timeout_seconds: float = Field(default=5.0, gt=0)

    # JWT配置
    jwt_secret_key: str = "your-secret-key"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 7  # 7天

    # API配置
    api_title: str = "PickRoute API"
    api_version: str = "1.0.0"
    api_prefix: str = "/api/v1"

    # 取餐时段配置
    hold_window_minutes: int = Field(default=15, ge=0, description="出餐后保留取餐的分钟数")
    pickup_code_ttl_minutes: int = Field(default=120, ge=1, description="取餐码有效期（分钟）")
    max_eta_minutes: int = Field(default=24 * 60, ge=1, description="到达/迟到时间上限（分钟）")

    # 路线匹配配置
    confidence_detour_weight: float = Field(default=5.0, ge=0, description="每公里绕行扣减的置信度")
    confidence_time_weight: float = Field(default=2.0, ge=0, description="到达与出餐每差一分钟扣减的置信度")
    match_include_non_accepting: bool = Field(default=True, description="匹配结果是否展示暂停接单的餐厅")
    ready_fast_threshold_minutes: int = Field(default=10, ge=0, description="ready_under_10 过滤阈值")

    # 服务监听
    host: str = "127.0.0.1"
    port: int = 8000

    # 开发模式
    debug: bool = False


# 全局设置实例
settings = Settings()
