import config


def test_feature_flags_per_environment() -> None:
    assert config.is_feature_enabled('attraction-suggestions', 'prod') is True
    assert config.is_feature_enabled('restore-password', 'local') is False


def test_unknown_environment_or_feature_is_disabled() -> None:
    assert config.is_feature_enabled('auth', 'staging') is False
    assert config.is_feature_enabled('time-travel', 'local') is False


def test_missing_credentials_is_read_at_call_time(monkeypatch) -> None:
    monkeypatch.setenv('ANTHROPIC_API_KEY', 'key')
    monkeypatch.setenv('PEXELS_API_KEY', 'key')
    assert config.missing_credentials() == []

    monkeypatch.setenv('ANTHROPIC_API_KEY', '   ')
    monkeypatch.delenv('PEXELS_API_KEY')
    assert config.missing_credentials() == ['language model API key', 'Pexels API key']
