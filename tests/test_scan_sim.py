from drupot import scan_sim


class FakeResponse:
    status_code = 200


def test_run_scenarios(monkeypatch):
    calls = []

    def fake_request(method, url, timeout=None, **kwargs):
        calls.append((method, url, kwargs.get("data")))
        return FakeResponse()

    monkeypatch.setattr(scan_sim.requests, "request", fake_request)

    executed = scan_sim.run_scenarios("http://sensor.test/", ["changelog", "login", "bogus"], pace=0)

    assert executed == ["changelog", "login"]
    assert calls[0] == ("GET", "http://sensor.test/CHANGELOG.txt", None)
    assert calls[1] == ("GET", "http://sensor.test/", None)
    posts = [call for call in calls if call[0] == "POST"]
    assert len(posts) == len(scan_sim.COMMON_PASSWORDS)
    assert all(call[2]["name"] == "admin" for call in posts)


def test_unreachable_sensor_reports_zero(monkeypatch, capsys):
    def refuse(method, url, timeout=None, **kwargs):
        raise scan_sim.requests.ConnectionError("refused")

    monkeypatch.setattr(scan_sim.requests, "request", refuse)
    assert scan_sim.send("GET", "http://sensor.test/") == 0
    assert "failed" in capsys.readouterr().out


def test_main_skips_unknown(monkeypatch, capsys):
    monkeypatch.setattr(scan_sim.requests, "request", lambda method, url, timeout=None, **kw: FakeResponse())
    scan_sim.main(["--target", "http://sensor.test", "--pace", "0", "node", "nope"])
    out = capsys.readouterr().out
    assert "POST http://sensor.test/node/1?_format=hal_json -> 200" in out
    assert "Skipped unknown scenarios: nope" in out
