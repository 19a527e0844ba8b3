"""Tests for the sync-ingest and sync-review commands."""

import json

import requests
import yaml
from click.testing import CliRunner

from statement_sync.bin import ingest, review
from statement_sync.lib import bank_extract

OFX = """<OFX>
<BANKMSGSRSV1><STMTTRNRS><STMTRS>
<BANKACCTFROM><BANKID>001</BANKID><ACCTID>999-1</ACCTID></BANKACCTFROM>
<BANKTRANLIST>
<STMTTRN><TRNTYPE>DEBIT</TRNTYPE><DTPOSTED>20240305</DTPOSTED><TRNAMT>-45.00</TRNAMT>
<FITID>A1</FITID><MEMO>UBER TRIP</MEMO></STMTTRN>
<STMTTRN><TRNTYPE>CREDIT</TRNTYPE><DTPOSTED>20240306</DTPOSTED><TRNAMT>3000.00</TRNAMT>
<FITID>A2</FITID><MEMO>SALARIO EMPRESA X</MEMO></STMTTRN>
<STMTTRN><TRNTYPE>OTHER</TRNTYPE><DTPOSTED>20240306</DTPOSTED><TRNAMT>5000.00</TRNAMT>
<FITID>A3</FITID><MEMO>SALDO DO DIA</MEMO></STMTTRN>
</BANKTRANLIST></STMTRS></STMTTRNRS></BANKMSGSRSV1>
<DTSERVER>20240310</DTSERVER>
</OFX>
"""


def _write_ofx(tmp_path):
    path = tmp_path / "extrato.ofx"
    path.write_text(OFX)
    return path


def test_ingest_ofx_then_duplicate(tmp_path):
    runner = CliRunner()
    ofx = _write_ofx(tmp_path)
    args = ["--file", str(ofx), "--wallet", "w1", "--root", str(tmp_path)]

    first = runner.invoke(ingest.main, args)
    assert first.exit_code == 0, first.output
    assert "Created: 2" in first.output
    assert "Skipped 1 balance line(s)" in first.output
    assert (tmp_path / "state" / "statement_sync.sqlite").exists()

    second = runner.invoke(ingest.main, args)
    assert second.exit_code == 0
    assert "Already imported" in second.output


def test_ingest_ofx_json(tmp_path):
    runner = CliRunner()
    ofx = _write_ofx(tmp_path)
    args = ["--file", str(ofx), "--wallet", "w1", "--root", str(tmp_path), "--json"]

    first = json.loads(runner.invoke(ingest.main, args).output)
    assert first["created"] == 2
    assert first["alreadyImported"] is False
    assert first["skippedMarkers"] == 1
    assert first["reportedBalance"] == "5000.00"

    second = json.loads(runner.invoke(ingest.main, args).output)
    assert second["alreadyImported"] is True
    assert second["created"] == 0


def test_ingest_ofx_requires_file(tmp_path):
    result = CliRunner().invoke(ingest.main, ["--wallet", "w1", "--root", str(tmp_path)])
    assert result.exit_code == 1


def test_ingest_rejects_non_ofx(tmp_path):
    path = tmp_path / "extrato.txt"
    path.write_text(OFX)
    result = CliRunner().invoke(
        ingest.main, ["--file", str(path), "--wallet", "w1", "--root", str(tmp_path)]
    )
    assert result.exit_code == 1
    assert "expected an .ofx file" in result.output


def test_ingest_bank_extract(tmp_path, monkeypatch):
    (tmp_path / "statement_sync.yaml").write_text(yaml.dump({
        "bank_extract": {
            "app_key": "app-key",
            "wallets": {"checking": {"agency": "1234", "account": "56789"}},
        },
    }))

    class Response:
        status_code = 200

        def raise_for_status(self):
            pass

        def json(self):
            return {
                "quantidadeTotalPagina": 1,
                "listaLancamento": [
                    {"dataMovimento": 5032024, "indicadorSinalLancamento": "C",
                     "textoDescricaoHistorico": "Saldo Anterior", "valorLancamento": 100},
                    {"dataMovimento": 5032024, "indicadorSinalLancamento": "D",
                     "textoDescricaoHistorico": "PIX - ENVIADO", "valorLancamento": 20,
                     "numeroDocumento": 1, "codigoHistorico": 144},
                ],
            }

    def fake_get(url, **kwargs):
        assert kwargs["headers"]["Authorization"] == "Bearer tok"
        return Response()

    monkeypatch.setattr(bank_extract.requests, "get", fake_get)
    runner = CliRunner()
    args = ["--source", "bank-extract", "--wallet", "checking", "--root", str(tmp_path), "--json"]
    env = {"STATEMENT_SYNC_BB_ACCESS_TOKEN": "tok"}

    first = json.loads(runner.invoke(ingest.main, args, env=env).output)
    assert first["created"] == 1
    assert first["skippedMarkers"] == 1

    second = json.loads(runner.invoke(ingest.main, args, env=env).output)
    assert second["created"] == 0
    assert second["updated"] == 1


def test_ingest_bank_extract_unknown_wallet(tmp_path):
    result = CliRunner().invoke(
        ingest.main, ["--source", "bank-extract", "--wallet", "nope", "--root", str(tmp_path)]
    )
    assert result.exit_code == 1
    assert "no bank_extract account" in result.output


def test_ingest_bank_extract_adapter_failure(tmp_path, monkeypatch):
    (tmp_path / "statement_sync.yaml").write_text(yaml.dump({
        "bank_extract": {"app_key": "k", "wallets": {"c": {"agency": "1", "account": "2"}}},
    }))

    def fake_get(url, **kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(bank_extract.requests, "get", fake_get)
    monkeypatch.setattr(bank_extract, "_sleep_backoff", lambda attempt: None)
    result = CliRunner().invoke(
        ingest.main,
        ["--source", "bank-extract", "--wallet", "c", "--root", str(tmp_path)],
        env={"STATEMENT_SYNC_BB_ACCESS_TOKEN": "tok"},
    )
    assert result.exit_code == 1
    assert "Extract request failed" in result.output


def test_review_lists_transactions_and_batches(tmp_path):
    runner = CliRunner()
    ofx = _write_ofx(tmp_path)
    runner.invoke(ingest.main, ["--file", str(ofx), "--wallet", "w1", "--root", str(tmp_path)])

    listing = runner.invoke(review.main, ["--wallet", "w1", "--root", str(tmp_path)])
    assert listing.exit_code == 0, listing.output
    assert "Transactions: 2" in listing.output

    batches = runner.invoke(
        review.main,
        ["--wallet", "w1", "--root", str(tmp_path), "--batches"],
        env={"COLUMNS": "160"},
    )
    assert batches.exit_code == 0
    assert "001_999-1_20240310" in batches.output

    empty = runner.invoke(review.main, ["--wallet", "w2", "--root", str(tmp_path)])
    assert "No transactions stored for w2" in empty.output
