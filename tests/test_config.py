from core.config import GrpcTargetSettings, HttpTargetSettings, Settings


def test_defaults():
    s = Settings(_env_file=None)
    assert s.http.requests == ["get:/"]
    assert s.grpc.dial_timeout_seconds == 10.0
    assert s.warmup.max_requests == 0


def test_plain_string_is_one_item_even_with_commas():
    cfg = HttpTargetSettings(requests="get:/items/{$random|a,b,c}")
    assert cfg.requests == ["get:/items/{$random|a,b,c}"]


def test_json_array_string():
    cfg = GrpcTargetSettings(requests='["pkg.Svc/A", "pkg.Svc/B:{}"]', headers="")
    assert cfg.requests == ["pkg.Svc/A", "pkg.Svc/B:{}"]
    assert cfg.headers == []


def test_nested_environment_variables(monkeypatch):
    monkeypatch.setenv("HTTP__HOST", "http://svc:9000")
    monkeypatch.setenv("HTTP__REQUESTS", '["get:/health", "post:/warm:{}"]')
    monkeypatch.setenv("GRPC__ENABLED", "true")
    monkeypatch.setenv("WARMUP__CONCURRENCY", "4")
    s = Settings(_env_file=None)
    assert s.http.host == "http://svc:9000"
    assert s.http.requests == ["get:/health", "post:/warm:{}"]
    assert s.grpc.enabled is True
    assert s.warmup.concurrency == 4


def test_log_settings_from_environment(monkeypatch):
    monkeypatch.setenv("LOG__LEVEL", "warning")
    monkeypatch.setenv("LOG__FORMAT", "console")
    s = Settings(_env_file=None)
    assert s.log.level == "WARNING"
    assert s.log.format == "console"
    assert "grpc" in s.log.quiet_loggers
