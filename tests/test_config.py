"""Tests for settings.conf loading."""

import pytest

from config import DEFAULTS, SETTINGS_PATH_ENV, SettingsError, load_settings_conf

def write_settings(directory, body):
    (directory / 'settings.conf').write_text("[DEFAULT]\n" + body, encoding='utf-8')

def test_defaults_fill_missing_keys(tmp_path):
    write_settings(tmp_path, "jwt_secret = a-secret-of-sixteen-plus\nport = 9000\n")

    settings = load_settings_conf(str(tmp_path))

    assert settings['port'] == 9000
    assert settings['token_expiry_days'] == 7
    assert settings['catalog_cache_ttl'] == 60
    assert settings['db_url'] == DEFAULTS['db_url']
    assert settings['upload_dir'] == 'uploads'

def test_environment_points_at_settings_dir(tmp_path, monkeypatch):
    write_settings(tmp_path, "jwt_secret = a-secret-of-sixteen-plus\nclient_url = https://shop.example\n")
    monkeypatch.setenv(SETTINGS_PATH_ENV, str(tmp_path))

    assert load_settings_conf()['client_url'] == 'https://shop.example'

def test_missing_secret(tmp_path):
    write_settings(tmp_path, "port = 9000\n")
    with pytest.raises(SettingsError) as exc:
        load_settings_conf(str(tmp_path))
    assert 'jwt_secret' in str(exc.value)

def test_short_secret(tmp_path):
    write_settings(tmp_path, "jwt_secret = short\n")
    with pytest.raises(SettingsError) as exc:
        load_settings_conf(str(tmp_path))
    assert 'at least 16 characters' in str(exc.value)

def test_every_problem_is_reported(tmp_path):
    write_settings(tmp_path, "port = eighty\nnotification_limit = 0\n")

    with pytest.raises(SettingsError) as exc:
        load_settings_conf(str(tmp_path))

    message = str(exc.value)
    assert 'Missing required settings' in message
    assert "port: expected an integer, got 'eighty'" in message
    assert 'notification_limit: must be at least 1' in message
