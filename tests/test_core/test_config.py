"""
配置加载测试
"""

from checkout_engine.core.config import Environment, Settings


class TestSettings:
    """环境变量与默认值测试"""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LEDGER_MAX_RETRIES", raising=False)
        config = Settings(_env_file=None)

        assert config.ledger_max_retries == 5
        assert config.currency_minor_units["NGN"] == 0
        assert not hasattr(config, "coupon_cache_ttl")

    def test_env_vars_are_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("ledger_max_retries", "7")
        monkeypatch.setenv("ENVIRONMENT", "production")

        config = Settings(_env_file=None)

        assert config.ledger_max_retries == 7
        assert config.environment == Environment.PRODUCTION
        assert config.is_production

    def test_database_url_computed_from_parts(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        config = Settings(_env_file=None, db_host="db.internal", db_name="checkout")

        assert config.database_url_computed.startswith("postgresql+asyncpg://")
        assert "@db.internal:5432/checkout" in config.database_url_computed
