from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List, Optional
from enum import Enum


class Environment(str, Enum):

    """运行环境枚举"""
    TESTING = "testing"
    PRODUCTION = "production"


class Settings(BaseSettings):

    # 应用基础配置
    app_name: str = "Marketplace Checkout Engine"
    app_version: str = "1.0.0"
    environment: Environment = Environment.TESTING
    debug: bool = True

    # 数据库配置
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "checkout_engine_db"
    db_user: str = "checkout_user"
    db_password: str = "checkout_password"

    # Redis配置 (优惠券展示缓存)
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0
    redis_socket_timeout: float = 2.0

    # 结算货币配置
    default_currency: str = "NGN"
    # 各币种结算精度（小数位数），奈拉按整数结算
    currency_minor_units: Dict[str, int] = {
        "NGN": 0,
        "USD": 2,
        "GBP": 2,
        "EUR": 2,
        "ZAR": 2,
    }

    # 优惠券核销配置
    ledger_max_retries: int = 5

    # 商户分账配置
    default_platform_markup_percentage: float = 15.0

    # 缓存时间配置（秒）
    auto_apply_cache_ttl: int = 300
    analytics_cache_ttl: int = 600

    # 接口配置
    cors_allow_origins: List[str] = ["*"]

    # 日志配置
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def database_url_computed(self) -> str:
        """计算数据库URL"""
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def redis_url_computed(self) -> str:
        """计算Redis URL"""
        if self.redis_url:
            return self.redis_url
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


# 全局配置实例
settings = Settings()
