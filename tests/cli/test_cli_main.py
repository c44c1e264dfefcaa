"""Tests for the certwright command-line interface."""

from __future__ import annotations

import io
import json

import pytest

from certwright.cli.main import main
from certwright.models import DnsIdentifier, OrderResult, Renewal, Target, TargetPart, ValidationOptions
from certwright.storage.renewal_store import RenewalStore


def _run(argv, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    out, err = capsys.readouterr()
    return exc_info.value.code, out, err


def _run_ok(argv, capsys):
    main(argv)
    return json.loads(capsys.readouterr().out)


@pytest.fixture()
def store(tmp_path):
    return RenewalStore(tmp_path / "state")


def _renewal(renewal_id, name, success=None):
    renewal = Renewal(
        id=renewal_id,
        target=Target(friendly_name=None, common_name=None, parts=[TargetPart([DnsIdentifier(name)])]),
        validation=ValidationOptions("filesystem"),
    )
    if success is not None:
        renewal.record([OrderResult(name="main", success=success, thumbprint="ab")])
    return renewal


class TestStartup:
    def test_missing_config(self, tmp_path, capsys):
        code, _, err = _run(["-c", str(tmp_path / "absent.yaml"), "renewals", "list"], capsys)
        assert code == 1
        assert "configuration file not found" in err

    def test_invalid_config(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"
        path.write_text("bogus: 1\n", encoding="utf-8")
        code, _, err = _run(["-c", str(path), "--validate-only"], capsys)
        assert code == 1
        assert "Configuration validation failed" in err

    def test_validate_only(self, tmp_config_file, tmp_path, capsys):
        code, out, _ = _run(["-c", str(tmp_config_file), "--validate-only"], capsys)
        assert code == 0
        summary = json.loads(out)
        assert summary["configuration_path"] == str(tmp_path / "state")
        assert summary["default_order_plugin"] == "single"
        assert summary["multithreading"] is False

    def test_no_command(self, tmp_config_file, capsys):
        code, _, _ = _run(["-c", str(tmp_config_file)], capsys)
        assert code == 2


class TestRenewals:
    def test_list_empty(self, tmp_config_file, capsys):
        assert _run_ok(["-c", str(tmp_config_file), "renewals", "list"], capsys) == []

    def test_list(self, tmp_config_file, store, capsys):
        store.save(_renewal("a", "a.example.com"))
        store.save(_renewal("b", "b.example.com", success=True))

        rows = _run_ok(["-c", str(tmp_config_file), "renewals", "list"], capsys)

        assert [r["id"] for r in rows] == ["a", "b"]
        assert rows[0]["due"] is True
        assert rows[0]["last_run"] is None
        assert rows[1]["last_success"] is True
        assert rows[1]["validation"] == "filesystem"

    def test_due_includes_never_issued(self, tmp_config_file, store, capsys):
        store.save(_renewal("a", "a.example.com"))
        rows = _run_ok(["-c", str(tmp_config_file), "renewals", "due"], capsys)
        assert [r["id"] for r in rows] == ["a"]

    def test_missing_subcommand(self, tmp_config_file, capsys):
        code, _, _ = _run(["-c", str(tmp_config_file), "renewals"], capsys)
        assert code == 1


class TestInspect:
    def test_renewal(self, tmp_config_file, store, capsys):
        store.save(_renewal("a", "xn--bcher-kva.example"))
        data = _run_ok(["-c", str(tmp_config_file), "inspect", "renewal", "a"], capsys)
        assert data["id"] == "a"
        assert data["identifiers"] == ["bücher.example"]
        assert data["due"] is True

    def test_not_found(self, tmp_config_file, capsys):
        code, _, err = _run(["-c", str(tmp_config_file), "inspect", "renewal", "absent"], capsys)
        assert code == 1
        assert "renewal absent not found" in err

    def test_invalid_id_reported(self, tmp_config_file, capsys):
        code, _, err = _run(["-c", str(tmp_config_file), "inspect", "renewal", "../x"], capsys)
        assert code == 1
        assert "Invalid renewal id" in err


class TestSecrets:
    def test_set_list_delete(self, tmp_config_file, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO("s3cret\n"))
        stored = _run_ok(["-c", str(tmp_config_file), "secrets", "set", "dns-key"], capsys)
        assert stored == {"key": "dns-key", "reference": "vault://json/dns-key"}
        vault = json.loads((tmp_path / "state" / "secrets.json").read_text(encoding="utf-8"))
        assert vault == {"dns-key": "s3cret"}

        assert _run_ok(["-c", str(tmp_config_file), "secrets", "list"], capsys) == ["dns-key"]

        deleted = _run_ok(["-c", str(tmp_config_file), "secrets", "delete", "dns-key"], capsys)
        assert deleted == {"key": "dns-key", "deleted": True}

    def test_set_requires_value(self, tmp_config_file, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO(""))
        code, _, err = _run(["-c", str(tmp_config_file), "secrets", "set", "dns-key"], capsys)
        assert code == 1
        assert "no secret value" in err

    def test_delete_missing(self, tmp_config_file, capsys):
        code, _, err = _run(["-c", str(tmp_config_file), "secrets", "delete", "nope"], capsys)
        assert code == 1
        assert "secret nope not found" in err
