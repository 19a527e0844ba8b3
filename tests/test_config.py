"""Tests for settings loading."""

from pathlib import Path

import yaml

from statement_sync.lib.bank_extract import DEFAULT_BASE_URL
from statement_sync.lib.config import Settings, get_project_root


def test_defaults_without_file(tmp_path):
    settings = Settings.load(tmp_path, env={})
    assert settings.db_path == tmp_path / "state" / "statement_sync.sqlite"
    assert settings.rules_path == tmp_path / "rules" / "categories.yaml"
    assert settings.log_level is None
    assert settings.bank_extract.base_url == DEFAULT_BASE_URL
    assert settings.bank_extract.wallets == {}
    assert settings.bank_extract.client_cert is None


def test_load_yaml(tmp_path):
    (tmp_path / "statement_sync.yaml").write_text(yaml.dump({
        "db": "data/ledger.sqlite",
        "log_level": "DEBUG",
        "bank_extract": {
            "app_key": "from-file",
            "cert": "certs/cert.pem",
            "key": "certs/private.key",
            "ca": "/etc/ssl/bb-ca.cer",
            "max_pages": 5,
            "wallets": {"checking": {"agency": 1234, "account": "0056789"}},
        },
    }))
    settings = Settings.load(tmp_path, env={})
    assert settings.db_path == tmp_path / "data" / "ledger.sqlite"
    assert settings.log_level == "DEBUG"
    bank = settings.bank_extract
    assert bank.app_key == "from-file"
    assert bank.client_cert == (str(tmp_path / "certs" / "cert.pem"), str(tmp_path / "certs" / "private.key"))
    assert bank.ca == Path("/etc/ssl/bb-ca.cer")
    assert bank.max_pages == 5
    assert bank.wallets["checking"].agency == "1234"
    assert bank.wallets["checking"].account == "0056789"


def test_env_overrides(tmp_path):
    (tmp_path / "statement_sync.yaml").write_text(yaml.dump({
        "db": "data/ledger.sqlite",
        "bank_extract": {"app_key": "from-file"},
    }))
    env = {
        "STATEMENT_SYNC_DB": str(tmp_path / "other.sqlite"),
        "STATEMENT_SYNC_BB_APP_KEY": "from-env",
        "STATEMENT_SYNC_BB_ACCESS_TOKEN": "tok",
        "STATEMENT_SYNC_LOG_LEVEL": "WARNING",
    }
    settings = Settings.load(tmp_path, env=env)
    assert settings.db_path == tmp_path / "other.sqlite"
    assert settings.bank_extract.app_key == "from-env"
    assert settings.bank_extract.access_token == "tok"
    assert settings.log_level == "WARNING"


def test_project_root_lookup(tmp_path, monkeypatch):
    (tmp_path / "statement_sync.yaml").write_text("{}\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)
    assert get_project_root() == tmp_path
