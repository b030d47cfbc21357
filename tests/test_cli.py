import json

import pytest


@pytest.fixture
def stub_runner(monkeypatch):
    """Capture runner.run_module_once calls made by the CLI."""
    calls = []

    def _fake(module, kwargs=None, trigger_type="scheduled", **_kw):
        calls.append({"module": module, "kwargs": kwargs, "trigger_type": trigger_type})
        return {"message": "Harvested 3 jobs in 10 ms", "jobs_processed": 3}, "abc123"

    monkeypatch.setattr("service.runner.run_module_once", _fake)
    return calls


def test_cli_harvest_maps_flags_to_kwargs(stub_runner, capsys, tmp_path):
    from service import cli

    db = str(tmp_path / "h.db")
    rc = cli.main(["harvest", "--runs", "2", "--sqlite-path", db, "--industries", "Design,Legal", "--no-details"])
    assert rc == 0
    (call,) = stub_runner
    assert call["module"] == "modules.job_harvest"
    assert call["trigger_type"] == "adhoc"
    assert call["kwargs"] == {"runs": 2, "sqlite_path": db, "industries": "Design,Legal", "enrich_details": False}
    out, _ = capsys.readouterr()
    assert "DONE: Harvested 3 jobs" in out


def test_cli_run_parses_json_kwargs_and_prints_meta(stub_runner, capsys):
    from service import cli

    rc = cli.main(["run", "modules.job_harvest", "--kwargs", "runs=3", 'industries=["IT"]', "--print-meta"])
    assert rc == 0
    assert stub_runner[0]["kwargs"] == {"runs": 3, "industries": ["IT"]}
    out, _ = capsys.readouterr()
    assert '"jobs_processed": 3' in out


def test_cli_run_failure_returns_1(monkeypatch, capsys):
    from service import cli

    def _boom(*_a, **_kw):
        raise RuntimeError("search API unreachable")

    monkeypatch.setattr("service.runner.run_module_once", _boom)
    rc = cli.main(["harvest"])
    assert rc == 1
    _, err = capsys.readouterr()
    assert "FAILURE: search API unreachable" in err


def test_cli_validate_config_ok(write_min_config, capsys):
    from service import cli

    assert cli.main(["validate-config"]) == 0
    out, _ = capsys.readouterr()
    assert "OK" in out


def test_cli_validate_config_rejects_bad_harvest_kwargs(tmp_path, capsys):
    from service import cli

    p = tmp_path / "bad.json"
    p.write_text(
        json.dumps({"jobs": [{"module": "modules.job_harvest", "interval": {"hours": 24}, "kwargs": {"industry_workers": 0}}]}),
        encoding="utf-8",
    )
    assert cli.main(["--config", str(p), "validate-config"]) == 1
    _, err = capsys.readouterr()
    assert "industry_workers" in err


def test_cli_list_jobs(write_min_config, capsys):
    from service import cli

    assert cli.main(["list-jobs"]) == 0
    out, _ = capsys.readouterr()
    assert "harvest-nightly" in out
    assert "modules.job_harvest: pytest config" in out
