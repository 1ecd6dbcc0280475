"""
Tests for configuration selection and validation
"""
from qrattend.config import Config, DevelopmentConfig, ProductionConfig, TestingConfig, get_config, validate_config


def settings_of(config_class, **overrides):
    settings = {key: getattr(config_class, key) for key in dir(config_class) if key.isupper()}
    settings.update(overrides)
    return settings


def test_get_config_by_name():
    assert get_config('testing') is TestingConfig
    assert get_config('production') is ProductionConfig
    assert get_config('unknown') is DevelopmentConfig


def test_get_config_from_environment(monkeypatch):
    monkeypatch.setenv('FLASK_ENV', 'production')

    assert get_config() is ProductionConfig


def test_shipped_configs_are_valid():
    for config_class in (Config, DevelopmentConfig, TestingConfig, ProductionConfig):
        assert validate_config(settings_of(config_class)) == []


def test_invalid_values_are_reported():
    errors = validate_config(settings_of(
        Config,
        ATTENDANCE_LATE_THRESHOLD_MINUTES=-5,
        ATTENDANCE_SESSION_RETENTION_DAYS=0,
        DATABASE_TIMEOUT=0,
        SECRET_KEY=''
    ))

    assert len(errors) == 4


def test_strict_contracts_outside_production():
    assert TestingConfig.ATTENDANCE_STRICT_CONTRACTS
    assert not ProductionConfig.ATTENDANCE_STRICT_CONTRACTS
