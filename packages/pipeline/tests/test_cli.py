from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

import cd_pipeline.cli as cli
from cd_pipeline.cli import main
from cd_pipeline.core import load_settings
from cd_pipeline.definition import (
    RecipientKind,
    RecipientSpec,
    StageKind,
    StageSpec,
    default_definition,
    load_definition,
    write_definition,
)
from cd_pipeline.notify import WebhookRecipient
from cd_pipeline.tags import HttpTagRegistry


@pytest.fixture(autouse=True)
def _settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CD_PIPELINE_RUN_ROOT", str(tmp_path / "runs"))
    monkeypatch.setenv("CD_PIPELINE_TAG_BACKEND", "file")
    monkeypatch.setenv("CD_PIPELINE_TAG_STORE_PATH", str(tmp_path / "state" / "tags.json"))
    monkeypatch.setenv("CD_PIPELINE_OUTBOX_DIR", str(tmp_path / "outbox"))
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


def test_init_then_validate(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    out = tmp_path / "pipeline.json"
    assert main(["init", "--out", str(out), "--repo", "shop", "--region", "eu-west-1"]) == 0
    d = load_definition(out)
    assert d.source.repo_name == "shop"
    assert d.cluster.region == "eu-west-1"

    assert main(["init", "--out", str(out)]) == 1

    assert main(["validate", "--definition", str(out)]) == 0
    assert "3 stage(s)" in capsys.readouterr().out


def test_validate_reports_bad_definition(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"name": "x1"}))
    assert main(["validate", "--definition", str(bad)]) == 2
    assert "error" in capsys.readouterr().out


def test_tags_put_and_get(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["tags", "put", "--repo", "myrepo", "--value", "20240101120000"]) == 0
    capsys.readouterr()
    assert main(["tags", "get", "--repo", "myrepo"]) == 0
    assert capsys.readouterr().out.strip() == "20240101120000"


def test_tags_get_missing_and_bad_value() -> None:
    assert main(["tags", "get", "--repo", "nobody"]) == 2
    assert main(["tags", "put", "--repo", "myrepo", "--value", "latest"]) == 2


def test_cluster_access_prints_identity_mapping(capsys: pytest.CaptureFixture[str]) -> None:
    arn = "arn:aws:iam::123456789012:role/deploy"
    assert main(["cluster-access", "--role-arn", arn]) == 0
    out = capsys.readouterr().out
    assert (
        f"eksctl create iamidentitymapping --cluster stk-gameservers --region us-east-1 --arn {arn} --group system:masters"
        in out
    )


def test_run_end_to_end(tmp_path: Path, source_dir: Path) -> None:
    d = default_definition(repo_name="myrepo", registry_repository="myrepo").model_copy(
        update={
            "stages": [
                StageSpec(name="unit-test", kind=StageKind.test, commands=["test -f app.txt"]),
                StageSpec(name="docker-build", kind=StageKind.build, commands=['echo "$IMAGE_URI"']),
                StageSpec(
                    name="eks-deploy",
                    kind=StageKind.deploy,
                    manifest="deployment.yml",
                    commands=['grep -q "$IMAGE_TAG" rendered-manifest.yml'],
                ),
            ]
        }
    )
    defn = tmp_path / "pipeline.json"
    write_definition(defn, d)

    rc = main(["run", "--definition", str(defn), "--source", str(source_dir), "--run-id", "cli1"])
    assert rc == 0

    report = json.loads((tmp_path / "runs" / "cli1" / "run_report.json").read_text())
    assert report["status"] == "succeeded"

    tags = json.loads((tmp_path / "state" / "tags.json").read_text())
    assert set(tags) == {"myrepo-image-latest-tag"}

    sms = (tmp_path / "outbox" / "sms.jsonl").read_text().splitlines()
    email = (tmp_path / "outbox" / "email.jsonl").read_text().splitlines()
    assert [json.loads(x)["event"]["stage"] for x in sms] == ["unit-test", "docker-build", "eks-deploy"]
    assert len(email) == 3


def test_run_failure_exit_code(tmp_path: Path, source_dir: Path) -> None:
    d = default_definition().model_copy(
        update={"stages": [StageSpec(name="unit-test", kind=StageKind.test, commands=["false"])]}
    )
    defn = tmp_path / "pipeline.json"
    write_definition(defn, d)
    assert main(["run", "--definition", str(defn), "--source", str(source_dir)]) == 1


def test_validate_prints_schema(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["validate", "--schema"]) == 0
    schema = json.loads(capsys.readouterr().out)
    assert "stages" in schema["properties"]


@pytest.mark.parametrize("stored", ['"20240101120000"', '{"Parameter": {"Value": "20240101120000"}}'])
def test_tags_get_prints_normalized_value(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], stored: str
) -> None:
    store = tmp_path / "state" / "tags.json"
    store.parent.mkdir(parents=True)
    store.write_text(json.dumps({"myrepo-image-latest-tag": stored}))
    assert main(["tags", "get", "--repo", "myrepo"]) == 0
    assert capsys.readouterr().out.strip() == "20240101120000"


def test_tags_command_closes_http_registry(monkeypatch: pytest.MonkeyPatch) -> None:
    registry = HttpTagRegistry.from_url(
        "http://tags.test",
        transport=httpx.MockTransport(lambda req: httpx.Response(200, text="20240101120000")),
    )
    monkeypatch.setattr(cli, "registry_from_settings", lambda s: registry)
    assert main(["tags", "get", "--repo", "myrepo"]) == 0
    assert registry.client.is_closed


def test_run_closes_registry_and_recipients(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    registry = HttpTagRegistry.from_url(
        "http://tags.test", transport=httpx.MockTransport(lambda req: httpx.Response(200))
    )
    monkeypatch.setattr(cli, "registry_from_settings", lambda s: registry)
    d = default_definition().model_copy(
        update={
            "recipients": [RecipientSpec(kind=RecipientKind.webhook, address="http://hooks.test/x")],
            "stages": [StageSpec(name="unit-test", kind=StageKind.test, commands=["false"])],
        }
    )
    hooks: list[WebhookRecipient] = []
    real = cli.recipients_from_specs

    def _capture(specs, *, outbox_dir):
        out = real(specs, outbox_dir=outbox_dir)
        hooks.extend(r for r in out if isinstance(r, WebhookRecipient))
        return out

    monkeypatch.setattr(cli, "recipients_from_specs", _capture)
    defn = tmp_path / "pipeline.json"
    write_definition(defn, d)

    assert main(["run", "--definition", str(defn), "--source", str(tmp_path / "missing")]) == 1
    assert registry.client.is_closed
    assert hooks and all(h.client.is_closed for h in hooks)


def test_run_rejects_bad_run_id(tmp_path: Path, source_dir: Path) -> None:
    defn = tmp_path / "pipeline.json"
    write_definition(defn, default_definition())
    rc = main(["run", "--definition", str(defn), "--source", str(source_dir), "--run-id", "release.42"])
    assert rc == 2
    assert not (tmp_path / "runs").exists()
