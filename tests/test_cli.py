"""Tests for the command-line entrypoint."""

from __future__ import annotations

import json

import pytest

from catalog_sync.server import cli


@pytest.fixture
def configured(monkeypatch, tmp_path, fake_catalog):
    """Point the CLI at the in-memory catalog."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CATALOG_SYNC_CONFIG", raising=False)
    monkeypatch.setenv("CATALOG_SYNC_HOST", "https://catalog.example")
    monkeypatch.setenv("CATALOG_SYNC_CLOUD_ID", "cloud-1")
    monkeypatch.setattr(cli, "build_client", lambda config: fake_catalog)
    return fake_catalog


def _write(tmp_path, payload) -> str:
    path = tmp_path / "manifests.json"
    path.write_text(json.dumps(payload))
    return str(path)


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_parser_serve_defaults():
    args = cli.build_parser().parse_args(["serve"])

    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_apply_list_of_manifests(configured, tmp_path, capsys):
    path = _write(
        tmp_path,
        [
            {
                "kind": "Metric",
                "metadata": {"name": "coverage"},
                "spec": {"format": {"unit": "%"}},
            },
            {
                "kind": "Scorecard",
                "metadata": {"name": "readiness"},
                "spec": {
                    "componentTypeIds": ["SERVICE"],
                    "importance": "REQUIRED",
                    "scoringStrategyType": "WEIGHT_BASED",
                    "state": "DRAFT",
                    "criteria": [
                        {
                            "hasMetricValue": {
                                "name": "coverage",
                                "comparator": "GREATER_THAN",
                                "comparatorValue": 75,
                            }
                        }
                    ],
                },
            },
        ],
    )

    assert cli.main(["apply", "-f", path]) == 0

    results = json.loads(capsys.readouterr().out)
    assert [r["action"] for r in results] == ["created", "created"]
    assert results[1]["resource"]["criteria"][0]["comparatorValue"] == 75.0
    assert len(configured.metrics) == 1
    assert configured.closed


def test_apply_reports_catalog_errors(configured, tmp_path, capsys):
    path = _write(tmp_path, {"kind": "Component", "metadata": {"name": "x"}, "spec": {}})

    assert cli.main(["apply", "-f", path]) == 1

    err = json.loads(capsys.readouterr().err)
    assert err["error_type"] == "validation_error"
    assert configured.closed
    assert err["details"]["violations"] == [{"field": "spec.typeId", "error": "is required"}]


def test_apply_rejects_malformed_manifest(configured, tmp_path, capsys):
    path = _write(tmp_path, [{"metadata": {"name": "no-kind"}}])

    assert cli.main(["apply", "-f", path]) == 1

    err = json.loads(capsys.readouterr().err)
    assert err["details"]["violations"][0]["field"] == "[0].kind"


def test_apply_missing_file(configured, tmp_path, capsys):
    assert cli.main(["apply", "-f", str(tmp_path / "nope.json")]) == 1
    assert "cannot read" in capsys.readouterr().err


def test_apply_without_catalog(monkeypatch, tmp_path, capsys):
    monkeypatch.chdir(tmp_path)
    for name in ("CATALOG_SYNC_CONFIG", "CATALOG_SYNC_HOST", "COMPASS_HOST"):
        monkeypatch.delenv(name, raising=False)

    assert cli.main(["apply", "-f", "whatever.json"]) == 2
    assert "no catalog configured" in capsys.readouterr().err
