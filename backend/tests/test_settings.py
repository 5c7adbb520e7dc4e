import pytest
from pydantic import ValidationError

from cleanquote.main import _validate_prod_config
from cleanquote.settings import Settings


def test_defaults():
    configured = Settings(_env_file=None)
    assert configured.app_env == "dev"
    assert configured.quote_timezone == "Europe/London"
    assert configured.minimum_booking_hours == 2.0
    assert [(tier.max_hours, tier.charge) for tier in configured.short_notice_tiers] == [
        (12, 50),
        (24, 30),
        (48, 15),
    ]


def test_short_notice_tiers_from_environment(monkeypatch):
    monkeypatch.setenv("SHORT_NOTICE_TIERS", '[{"max_hours": 6, "charge": 70}, {"max_hours": 2, "charge": 90}]')
    configured = Settings(_env_file=None)
    assert [(tier.max_hours, tier.charge) for tier in configured.short_notice_tiers] == [(2, 90), (6, 70)]


def test_short_notice_tiers_accept_lists():
    configured = Settings(_env_file=None, short_notice_tiers=[{"max_hours": 3, "charge": 10}])
    assert configured.short_notice_tiers[0].charge == 10


def test_empty_tiers_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, short_notice_tiers="[]")


def test_negative_values_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, minimum_booking_hours=-1)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, override_epsilon_hours=0)


def test_prod_requires_metrics_token():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, app_env="prod", metrics_enabled=True)
    configured = Settings(_env_file=None, app_env="prod", metrics_enabled=False)
    assert configured.metrics_token is None


def test_prod_startup_rejects_short_metrics_token():
    configured = Settings(_env_file=None, app_env="prod", metrics_token="short")
    with pytest.raises(RuntimeError):
        _validate_prod_config(configured)
    _validate_prod_config(Settings(_env_file=None, app_env="prod", metrics_token="a-long-enough-token"))


def test_quote_timezone_must_be_known():
    assert Settings(_env_file=None, quote_timezone="America/New_York").quote_timezone == "America/New_York"
    with pytest.raises(ValidationError):
        Settings(_env_file=None, quote_timezone="Mars/Olympus_Mons")
