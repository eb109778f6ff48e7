from __future__ import annotations

import json
import logging
import os

import pytest

import app


@pytest.fixture(autouse=True)
def _quiet_package_logger():
    yield
    lg = logging.getLogger("sentinelid")
    for h in list(lg.handlers):
        lg.removeHandler(h)
        h.close()


def _run(tmp_path, capsys, *argv):
    code = app.main(["--root", str(tmp_path), *argv])
    out, err = capsys.readouterr()
    return code, (json.loads(out) if out.strip() else None), err


def test_alias_and_session_commands(tmp_path, capsys):
    code, alias, _ = _run(tmp_path, capsys, "alias", "create", "--name", "sales", "--domain", "shop.test", "--group", "shopping")
    assert code == 0
    assert alias["local"] == "sales@shop.test"

    code, listed, _ = _run(tmp_path, capsys, "alias", "list")
    assert [a["id"] for a in listed] == [alias["id"]]
    assert "password" not in listed[0]

    code, sess, _ = _run(tmp_path, capsys, "session", "create", "shop.test", "--alias", alias["id"])
    assert sess["aliasLocal"] == "sales@shop.test"

    code, out, _ = _run(tmp_path, capsys, "alias", "delete", alias["id"])
    assert out["detached_sessions"] == [sess["id"]]

    code, sessions, _ = _run(tmp_path, capsys, "session", "list")
    assert sessions[0]["aliasId"] is None

    code, tok, _ = _run(tmp_path, capsys, "session", "open", sess["id"])
    assert tok["route"] == f"virtual://{sess['id']}"


def test_errors_exit_nonzero(tmp_path, capsys):
    code, out, err = _run(tmp_path, capsys, "session", "destroy", "missing")
    assert code == 1
    assert out is None
    assert "not_found" in err

    code, _, err = _run(tmp_path, capsys, "password", "--length", "3")
    assert code == 1
    assert "validation_error" in err


def test_password_check_and_features(tmp_path, capsys):
    code, out, _ = _run(tmp_path, capsys, "password")
    assert code == 0 and len(out["password"]) == 16

    code, out, _ = _run(tmp_path, capsys, "check", "breach@example.com")
    assert out["status"] == "breached"

    code, out, _ = _run(tmp_path, capsys, "features")
    assert out["breach_checker"] == "KeywordBreachChecker"


def test_export_writes_plain_state(tmp_path, capsys):
    _run(tmp_path, capsys, "alias", "create", "--name", "sales", "--domain", "shop.test")
    dest = os.path.join(str(tmp_path), "out", "export.json")
    code, out, _ = _run(tmp_path, capsys, "export", dest)
    assert code == 0
    with open(dest, encoding="utf-8") as f:
        assert json.load(f)["aliases"][0]["local"] == "sales@shop.test"


def test_invalid_config_exits_2(tmp_path, capsys):
    os.makedirs(os.path.join(str(tmp_path), "config"))
    with open(os.path.join(str(tmp_path), "config", "sentinelid.json"), "w", encoding="utf-8") as f:
        json.dump({"nope": 1}, f)
    code, _, err = _run(tmp_path, capsys, "features")
    assert code == 2
    assert "config_error" in err


def test_alias_list_by_local_and_events(tmp_path, capsys):
    _, a, _ = _run(tmp_path, capsys, "alias", "create", "--name", "sales", "--domain", "shop.test")
    _run(tmp_path, capsys, "alias", "create", "--name", "news", "--domain", "shop.test")

    code, found, _ = _run(tmp_path, capsys, "alias", "list", "--local", "sales@shop.test")
    assert code == 0
    assert [x["id"] for x in found] == [a["id"]]

    code, events, _ = _run(tmp_path, capsys, "events", "--tail", "1")
    assert code == 0
    assert [e["event"] for e in events] == ["alias.created"]
    assert a["password"] not in json.dumps(events)
