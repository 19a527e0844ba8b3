"""Settings — statement_sync.yaml plus STATEMENT_SYNC_* environment overrides.

Example statement_sync.yaml:

    db: state/statement_sync.sqlite
    rules: rules/categories.yaml
    log_level: INFO
    bank_extract:
      app_key: my-app-key
      cert: certs/cert.pem
      key: certs/private.key
      ca: certs/ca.cer
      wallets:
        checking:
          agency: "1234"
          account: "56789"

Credentials (access token, client basic) belong in the environment, not
in the file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .bank_extract import DEFAULT_BASE_URL

CONFIG_FILENAME = "statement_sync.yaml"
ENV_PREFIX = "STATEMENT_SYNC_"


def get_project_root() -> Path:
    """Find the project root by looking for statement_sync.yaml."""
    cwd = Path.cwd()
    for parent in [cwd, *cwd.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return cwd


@dataclass(frozen=True)
class BankAccount:
    agency: str
    account: str


@dataclass
class BankExtractSettings:
    base_url: str = DEFAULT_BASE_URL
    app_key: str | None = None
    access_token: str | None = None
    client_basic: str | None = None
    cert: Path | None = None
    key: Path | None = None
    ca: Path | None = None
    page_size: int = 50
    max_pages: int = 50
    wallets: dict[str, BankAccount] = field(default_factory=dict)

    @property
    def client_cert(self) -> tuple[str, str] | None:
        if self.cert and self.key:
            return (str(self.cert), str(self.key))
        return None


@dataclass
class Settings:
    root: Path
    db_path: Path
    rules_path: Path
    log_level: str | None = None
    bank_extract: BankExtractSettings = field(default_factory=BankExtractSettings)

    @classmethod
    def load(cls, root: Path, env: Mapping[str, str] | None = None) -> "Settings":
        """Load settings for a project root. A missing file means defaults."""
        env = os.environ if env is None else env
        path = root / CONFIG_FILENAME
        data: dict[str, Any] = {}
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

        def resolve(value: str | None) -> Path | None:
            if not value:
                return None
            p = Path(value).expanduser()
            return p if p.is_absolute() else root / p

        bank = data.get("bank_extract") or {}
        wallets = {
            str(wallet_id): BankAccount(agency=str(acct["agency"]), account=str(acct["account"]))
            for wallet_id, acct in (bank.get("wallets") or {}).items()
        }
        bank_settings = BankExtractSettings(
            base_url=bank.get("base_url", DEFAULT_BASE_URL),
            app_key=env.get(f"{ENV_PREFIX}BB_APP_KEY") or bank.get("app_key"),
            access_token=env.get(f"{ENV_PREFIX}BB_ACCESS_TOKEN"),
            client_basic=env.get(f"{ENV_PREFIX}BB_CLIENT_BASIC"),
            cert=resolve(bank.get("cert")),
            key=resolve(bank.get("key")),
            ca=resolve(bank.get("ca")),
            page_size=int(bank.get("page_size", 50)),
            max_pages=int(bank.get("max_pages", 50)),
            wallets=wallets,
        )

        db_path = resolve(env.get(f"{ENV_PREFIX}DB") or data.get("db"))
        rules_path = resolve(data.get("rules"))
        return cls(
            root=root,
            db_path=db_path or root / "state" / "statement_sync.sqlite",
            rules_path=rules_path or root / "rules" / "categories.yaml",
            log_level=env.get(f"{ENV_PREFIX}LOG_LEVEL") or data.get("log_level"),
            bank_extract=bank_settings,
        )
