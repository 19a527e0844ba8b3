"""Tests for the bank extract client. HTTP is faked by monkeypatching requests."""

from datetime import date
from decimal import Decimal

import pytest
import requests

from statement_sync.lib import bank_extract
from statement_sync.lib.bank_extract import (
    BankExtractClient,
    entry_from_api,
    extract_items,
    fetch_access_token,
    format_api_date,
    sync_window,
)
from statement_sync.lib.errors import AdapterError


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: dict | None = None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


def _item(doc: int, **kwargs) -> dict:
    item = {
        "dataLancamento": 5032024,
        "dataMovimento": 5032024,
        "indicadorSinalLancamento": "D",
        "textoDescricaoHistorico": "PIX - ENVIADO",
        "textoInformacaoComplementar": "JOAO DA SILVA",
        "valorLancamento": 150.5,
        "codigoHistorico": 144,
        "numeroLote": 14397,
        "numeroDocumento": doc,
        "numeroCpfCnpjContrapartida": 12345678901,
        "indicadorTipoPessoaContrapartida": "F",
    }
    item.update(kwargs)
    return item


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr(bank_extract, "_sleep_backoff", lambda attempt: None)


def _client(**kwargs) -> BankExtractClient:
    return BankExtractClient("token-123", "app-key", **kwargs)


def test_format_api_date_has_no_leading_zero_on_day():
    assert format_api_date(date(2024, 3, 5)) == "5032024"
    assert format_api_date(date(2024, 12, 25)) == "25122024"


def test_sync_window():
    today = date(2024, 3, 15)
    assert sync_window(None, today) == (date(2024, 3, 1), today)
    assert sync_window(date(2024, 3, 10), today) == (today, today)
    assert sync_window(None, today, days=7) == (date(2024, 3, 9), today)
    with pytest.raises(ValueError):
        sync_window(None, today, days=0)


def test_entry_from_api():
    entry = entry_from_api(_item(42))
    assert entry.description == "PIX - ENVIADO"
    assert entry.encoded_date == "5032024"
    assert entry.magnitude == Decimal("150.5")
    assert entry.sign_indicator == "D"
    assert entry.transaction_code == 144
    assert entry.lot_number == 14397
    assert entry.document_number == 42
    assert entry.counterparty_tax_id == "12345678901"
    assert entry.bank_name == "Banco do Brasil"


def test_entry_from_api_fallbacks_and_nested_values():
    entry = entry_from_api(_item(
        0,
        dataMovimento=0,
        dataLancamento=6032024,
        numeroLote=0,
        numeroCpfCnpjContrapartida=0,
        lancamentoContaCorrenteCliente={
            "nomeTipoOperacao": "TED RECEBIDO",
            "valorLancamentoRemessa": 99.9,
            "codigoHistorico": 976,
        },
    ))
    assert entry.encoded_date == "6032024"
    assert entry.description == "TED RECEBIDO"
    assert entry.magnitude == Decimal("99.9")
    assert entry.transaction_code == 976
    assert entry.lot_number is None
    assert entry.document_number is None
    assert entry.counterparty_tax_id is None


def test_extract_items_shapes():
    assert extract_items({"listaLancamento": [1]}) == [1]
    assert extract_items({"lancamentos": [2]}) == [2]
    assert extract_items({"data": {"listaLancamento": [3]}}) == [3]
    assert extract_items({"data": {"lancamentos": [4]}}) == [4]
    assert extract_items({}) == []


def test_pagination_and_request_shape(monkeypatch):
    calls = []

    def fake_get(url, headers, params, cert, verify, timeout):
        calls.append((url, headers, dict(params)))
        page = params["numeroPagina"]
        return FakeResponse(200, {
            "quantidadeTotalPagina": 2,
            "listaLancamento": [_item(page * 10), _item(page * 10 + 1)],
        })

    monkeypatch.setattr(bank_extract.requests, "get", fake_get)
    entries = _client().fetch_entries("0123", "000456789", date(2024, 3, 1), date(2024, 3, 15))

    assert len(entries) == 4
    assert [c[2]["numeroPagina"] for c in calls] == [1, 2]
    url, headers, params = calls[0]
    assert url.endswith("/conta-corrente/agencia/123/conta/456789")
    assert headers["Authorization"] == "Bearer token-123"
    assert headers["gw-dev-app-key"] == "app-key"
    assert params["dataInicioSolicitacao"] == "1032024"
    assert params["dataFimSolicitacao"] == "15032024"
    assert params["quantidadeRegistros"] == 50


def test_page_ceiling(monkeypatch):
    calls = []

    def fake_get(url, **kwargs):
        calls.append(kwargs["params"]["numeroPagina"])
        return FakeResponse(200, {"quantidadeTotalPagina": 99, "listaLancamento": [_item(1)]})

    monkeypatch.setattr(bank_extract.requests, "get", fake_get)
    entries = _client(max_pages=2).fetch_entries(1, 2, date(2024, 3, 1), date(2024, 3, 2))
    assert calls == [1, 2]
    assert len(entries) == 2


def test_retry_then_success(monkeypatch, no_sleep):
    responses = [FakeResponse(503), FakeResponse(200, {"listaLancamento": [_item(1)]})]

    def fake_get(url, **kwargs):
        return responses.pop(0)

    monkeypatch.setattr(bank_extract.requests, "get", fake_get)
    entries = _client().fetch_entries(1, 2, date(2024, 3, 1), date(2024, 3, 1))
    assert len(entries) == 1
    assert responses == []


def test_retry_gives_up(monkeypatch, no_sleep):
    calls = []

    def fake_get(url, **kwargs):
        calls.append(1)
        raise requests.ConnectionError("connection reset")

    monkeypatch.setattr(bank_extract.requests, "get", fake_get)
    with pytest.raises(AdapterError):
        _client().fetch_entries(1, 2, date(2024, 3, 1), date(2024, 3, 1))
    assert len(calls) == 3


def test_client_error_is_not_retried(monkeypatch, no_sleep):
    calls = []

    def fake_get(url, **kwargs):
        calls.append(1)
        return FakeResponse(400)

    monkeypatch.setattr(bank_extract.requests, "get", fake_get)
    with pytest.raises(AdapterError):
        _client().fetch_entries(1, 2, date(2024, 3, 1), date(2024, 3, 1))
    assert len(calls) == 1


def test_forbidden(monkeypatch, no_sleep):
    monkeypatch.setattr(bank_extract.requests, "get", lambda url, **kw: FakeResponse(403))
    with pytest.raises(AdapterError, match="access denied"):
        _client().fetch_entries(1, 2, date(2024, 3, 1), date(2024, 3, 1))


def test_fetch_access_token(monkeypatch):
    seen = {}

    def fake_post(url, headers, data, cert, verify, timeout):
        seen.update(url=url, headers=headers, data=data)
        return FakeResponse(200, {"access_token": "abc", "expires_in": 600})

    monkeypatch.setattr(bank_extract.requests, "post", fake_post)
    assert fetch_access_token("Y2xpZW50OnNlY3JldA==") == "abc"
    assert seen["headers"]["Authorization"] == "Basic Y2xpZW50OnNlY3JldA=="
    assert seen["data"] == {"grant_type": "client_credentials", "scope": "extrato-info"}


def test_fetch_access_token_rejected(monkeypatch):
    monkeypatch.setattr(bank_extract.requests, "post", lambda url, **kw: FakeResponse(401))
    with pytest.raises(AdapterError):
        fetch_access_token("bad")
