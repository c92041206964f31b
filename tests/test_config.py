"""Tests for settings.conf loading."""

import pytest

from config import load_settings_conf, SettingsError

def write_settings(path, body):
    (path / 'settings.conf').write_text('[DEFAULT]\n' + body)

def test_defaults_without_file(tmp_path):
    settings = load_settings_conf(str(tmp_path))

    assert settings['otp_ttl_seconds'] == 300
    assert settings['otp_max_attempts'] == 5
    assert settings['middleman_policy'] == 'least_loaded'
    assert settings['smtp_port'] == 587
    assert settings['smtp_starttls'] is True
    assert settings['jwt_secret']

def test_file_overrides_defaults(tmp_path):
    write_settings(tmp_path, 'otp_ttl_seconds = 60\nmiddleman_policy = round_robin\njwt_secret = abc\nsmtp_starttls = off\n')

    settings = load_settings_conf(str(tmp_path))

    assert settings['otp_ttl_seconds'] == 60
    assert settings['middleman_policy'] == 'round_robin'
    assert settings['jwt_secret'] == 'abc'
    assert settings['smtp_starttls'] is False

@pytest.mark.parametrize('body, problem', [
    ('otp_max_attempts = many\n', 'otp_max_attempts'),
    ('delivery_days = 0\n', 'delivery_days'),
    ('middleman_policy = random\n', 'middleman_policy'),
    ('smtp_starttls = maybe\n', 'smtp_starttls'),
])
def test_invalid_settings(tmp_path, body, problem):
    write_settings(tmp_path, body)

    with pytest.raises(SettingsError) as exc:
        load_settings_conf(str(tmp_path))

    assert problem in str(exc.value)
