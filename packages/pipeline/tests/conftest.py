from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest

from cd_pipeline.artifacts import ArtifactStore
from cd_pipeline.core import get_logger
from cd_pipeline.definition import DeliveryTarget
from cd_pipeline.executor import ExecutorConfig, StageExecutor
from cd_pipeline.notify import NotificationEvent, NotificationRouter
from cd_pipeline.pipeline.context import RunContext
from cd_pipeline.pipeline.events import EventSink
from cd_pipeline.stages import BuildBehavior, default_behaviors
from cd_pipeline.tags import ImageTagChannel, MemoryTagRegistry

BUILD_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

MANIFEST = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: sample-cluster-app
spec:
  template:
    spec:
      containers:
        - name: app
          image: ${IMAGE_URI}
          env:
            - name: BUILD_TAG
              value: "$IMAGE_TAG"
            - name: PRICE
              value: "$5"
"""


class RecordingRecipient:
    def __init__(self, name: str = "recorder") -> None:
        self.name = name
        self.events: list[NotificationEvent] = []

    def deliver(self, event: NotificationEvent) -> None:
        self.events.append(event)


@pytest.fixture
def target() -> DeliveryTarget:
    return DeliveryTarget(
        source_repo="myrepo",
        registry_host="123456789012.dkr.ecr.us-east-1.amazonaws.com",
        repository="myrepo",
        cluster_name="demo-cluster",
        region="us-east-1",
    )


@pytest.fixture
def registry() -> MemoryTagRegistry:
    return MemoryTagRegistry()


@pytest.fixture
def channel(registry: MemoryTagRegistry) -> ImageTagChannel:
    return ImageTagChannel(registry)


@pytest.fixture
def behaviors():
    b = default_behaviors()
    b["build"] = BuildBehavior(clock=lambda: BUILD_TIME)
    return b


@pytest.fixture
def executor(channel: ImageTagChannel, behaviors) -> StageExecutor:
    return StageExecutor(channel=channel, cfg=ExecutorConfig(), behaviors=behaviors)


@pytest.fixture
def recorder() -> RecordingRecipient:
    return RecordingRecipient()


@pytest.fixture
def router(recorder: RecordingRecipient) -> NotificationRouter:
    return NotificationRouter([recorder])


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    src = tmp_path / "src"
    (src / "lib").mkdir(parents=True)
    (src / "app.txt").write_text("hello\n")
    (src / "lib" / "util.txt").write_text("util\n")
    (src / "deployment.yml").write_text(MANIFEST)
    (src / ".git").mkdir()
    (src / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    return src


@pytest.fixture
def make_ctx(tmp_path: Path, target: DeliveryTarget) -> Callable[..., RunContext]:
    def _make(run_id: str = "run-1") -> RunContext:
        root = tmp_path / "runs" / run_id
        return RunContext(
            run_id=run_id,
            run_root=root,
            target=target,
            logger=get_logger("tests"),
            events=EventSink(root / "events.jsonl"),
            artifacts=ArtifactStore(root / "artifacts"),
        )

    return _make
