"""Bank extract API client — pulls checking-account movements page by page.

The extract API (Banco do Brasil "extratos v1") is reached over mutual TLS
with an OAuth client-credentials bearer token plus a developer app key.

API constraints:
- Dates are DDMMYYYY with no leading zero on the day (5032024 = 2024-03-05)
- Agency and account numbers must not carry leading zeros
- Pagination is 1-based; ``quantidadeTotalPagina`` gives the page count
- The extract interleaves balance lines ("Saldo Anterior", "S A L D O")
  with movements; those are filtered downstream, not here
"""

from __future__ import annotations

import random
import time
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterator

import requests

from .errors import AdapterError
from .logging_setup import get_logger
from .models import RawLedgerEntry
from .normalizer import to_decimal

_logger = get_logger("statement_sync.bank_extract")

DEFAULT_BASE_URL = "https://api-extratos.bb.com.br/extratos/v1"
OAUTH_URL = "https://oauth.bb.com.br/oauth/token"
BANK_NAME = "Banco do Brasil"

_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

_ITEM_KEYS = ("listaLancamento", "lancamentos")


def _is_retryable(exc: BaseException) -> bool:
    """Return True for HTTP 429/5xx and transport-level failures."""
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        status = exc.response.status_code
        return status == 429 or 500 <= status < 600
    return False


def _sleep_backoff(attempt_no: int) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    delay = base + random.uniform(-jitter, jitter)
    time.sleep(max(0.0, delay))


def format_api_date(d: date) -> str:
    """Request date as the API wants it: day without leading zero."""
    return f"{d.day}{d.month:02d}{d.year}"


def sync_window(
    last_synced: date | None,
    today: date | None = None,
    days: int | None = None,
) -> tuple[date, date]:
    """Date range to request for a wallet.

    An explicit ``days`` wins. Otherwise the first sync of a wallet covers
    the current month up to today and later syncs cover today only. The
    end of the window is never in the future.
    """
    today = today or date.today()
    if days is not None:
        if days < 1:
            raise ValueError("days must be at least 1")
        return today - timedelta(days=days - 1), today
    if last_synced is None:
        return today.replace(day=1), today
    return today, today


def _strip_zeros(value: str | int) -> str:
    return str(value).strip().lstrip("0") or "0"


def _nonzero(value: Any) -> Any:
    if value in (None, "", 0, "0"):
        return None
    return value


def _as_int(value: Any) -> int | None:
    value = _nonzero(value)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _amount(value: Any) -> Decimal | Any:
    # Unreadable amounts pass through so the record fails on its own later
    try:
        return to_decimal(value)
    except ValueError:
        return value


def entry_from_api(item: dict[str, Any], bank_name: str = BANK_NAME) -> RawLedgerEntry:
    """Map one extract item to a RawLedgerEntry.

    Values nested under ``lancamentoContaCorrenteCliente`` are preferred
    where present. The movement date falls back to the posting date when
    it is zero.
    """
    nested = item.get("lancamentoContaCorrenteCliente") or {}
    encoded_date = _nonzero(item.get("dataMovimento")) or item.get("dataLancamento") or ""
    tax_id = _nonzero(item.get("numeroCpfCnpjContrapartida"))

    return RawLedgerEntry(
        description=str(nested.get("nomeTipoOperacao") or item.get("textoDescricaoHistorico") or ""),
        encoded_date=str(encoded_date),
        magnitude=_amount(nested.get("valorLancamentoRemessa") or item.get("valorLancamento")),
        complementary_description=str(item.get("textoInformacaoComplementar") or ""),
        sign_indicator=_nonzero(item.get("indicadorSinalLancamento")),
        entry_type_indicator=_nonzero(item.get("indicadorTipoLancamento")),
        transaction_code=_as_int(nested.get("codigoHistorico") or item.get("codigoHistorico")),
        lot_number=_as_int(item.get("numeroLote")),
        document_number=_as_int(item.get("numeroDocumento")),
        counterparty_tax_id=str(tax_id) if tax_id is not None else None,
        counterparty_person_type=_nonzero(item.get("indicadorTipoPessoaContrapartida")),
        bank_name=bank_name,
    )


def extract_items(data: dict[str, Any]) -> list[dict[str, Any]]:
    """Find the movement list in any of the response shapes seen in the wild."""
    for container in (data, data.get("data") or {}):
        if not isinstance(container, dict):
            continue
        for key in _ITEM_KEYS:
            items = container.get(key)
            if isinstance(items, list):
                return items
    return []


def _total_pages(data: dict[str, Any]) -> int:
    nested = data.get("data") if isinstance(data.get("data"), dict) else {}
    raw = data.get("quantidadeTotalPagina") or nested.get("quantidadeTotalPagina") or 1
    try:
        return max(1, int(raw))
    except (TypeError, ValueError):
        return 1


class BankExtractClient:
    """Client for the checking-account extract API."""

    def __init__(
        self,
        access_token: str,
        app_key: str,
        base_url: str = DEFAULT_BASE_URL,
        cert: tuple[str, str] | None = None,
        ca: str | None = None,
        page_size: int = 50,
        max_pages: int = 50,
        timeout: int = 30,
    ) -> None:
        """Initialize the client.

        Args:
            access_token: OAuth bearer token (see ``fetch_access_token``)
            app_key: Developer application key, sent as ``gw-dev-app-key``
            cert: (certificate, private key) paths for mutual TLS
            ca: CA bundle path used to verify the server
            max_pages: Hard ceiling on pages fetched per request window
        """
        self.access_token = access_token
        self.app_key = app_key
        self.base_url = base_url.rstrip("/")
        self.cert = cert
        self.ca = ca
        self.page_size = page_size
        self.max_pages = max_pages
        self.timeout = timeout

    def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """Authenticated GET with bounded retry on transient failures."""
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "gw-dev-app-key": self.app_key,
            "Accept": "application/json",
        }
        attempt = 1
        while True:
            try:
                resp = requests.get(
                    url,
                    headers=headers,
                    params=params,
                    cert=self.cert,
                    verify=self.ca if self.ca else True,
                    timeout=self.timeout,
                )
                if resp.status_code == 403:
                    raise AdapterError(
                        "Extract API access denied. The token may be expired or the "
                        "application lacks the extract scope."
                    )
                resp.raise_for_status()
                return resp.json()
            except requests.RequestException as e:
                if attempt >= _MAX_ATTEMPTS or not _is_retryable(e):
                    _logger.error(
                        "bank_extract:request_failed url=%s page=%s attempt=%d error=%s",
                        url,
                        params.get("numeroPagina"),
                        attempt,
                        e,
                    )
                    raise AdapterError(f"Extract request failed: {e}") from e
                _logger.warning(
                    "bank_extract:retry url=%s page=%s attempt=%d error=%s",
                    url,
                    params.get("numeroPagina"),
                    attempt,
                    e,
                )
                _sleep_backoff(attempt)
                attempt += 1
            except ValueError as e:
                raise AdapterError(f"Extract response is not JSON: {e}") from e

    def fetch_page(
        self, agency: str | int, account: str | int, start: date, end: date, page: int = 1
    ) -> dict[str, Any]:
        path = f"/conta-corrente/agencia/{_strip_zeros(agency)}/conta/{_strip_zeros(account)}"
        params = {
            "numeroPagina": page,
            "quantidadeRegistros": self.page_size,
            "dataInicioSolicitacao": format_api_date(start),
            "dataFimSolicitacao": format_api_date(end),
        }
        return self._get(path, params)

    def iter_entries(
        self, agency: str | int, account: str | int, start: date, end: date
    ) -> Iterator[RawLedgerEntry]:
        """Yield every movement in the window, balance lines included."""
        if start > end:
            raise ValueError(f"Window start {start} is after end {end}")
        page = 1
        total = 1
        while page <= total:
            data = self.fetch_page(agency, account, start, end, page)
            total = _total_pages(data)
            items = extract_items(data)
            _logger.info(
                "bank_extract:page page=%d total=%d items=%d", page, total, len(items)
            )
            for item in items:
                yield entry_from_api(item)
            if page >= self.max_pages and total > page:
                _logger.warning(
                    "bank_extract:page_ceiling max_pages=%d total=%d", self.max_pages, total
                )
                break
            page += 1

    def fetch_entries(
        self, agency: str | int, account: str | int, start: date, end: date
    ) -> list[RawLedgerEntry]:
        return list(self.iter_entries(agency, account, start, end))


def fetch_access_token(
    client_basic: str,
    cert: tuple[str, str] | None = None,
    ca: str | None = None,
    scope: str = "extrato-info",
    url: str = OAUTH_URL,
) -> str:
    """Exchange client credentials for a bearer token.

    Args:
        client_basic: base64 of ``client_id:client_secret``

    Returns:
        Access token string (short-lived, do not persist)
    """
    try:
        resp = requests.post(
            url,
            headers={
                "Authorization": f"Basic {client_basic}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data={"grant_type": "client_credentials", "scope": scope},
            cert=cert,
            verify=ca if ca else True,
            timeout=30,
        )
    except requests.RequestException as e:
        raise AdapterError(f"Token request failed: {e}") from e

    if resp.status_code in (400, 401, 403):
        raise AdapterError(
            f"Token request rejected ({resp.status_code}). Check the client credentials "
            "and certificates."
        )
    try:
        resp.raise_for_status()
        token = resp.json().get("access_token")
    except (requests.RequestException, ValueError) as e:
        raise AdapterError(f"Token request failed: {e}") from e
    if not token:
        raise AdapterError("Token response has no access_token")
    return token
