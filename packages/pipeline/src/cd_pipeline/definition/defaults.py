from __future__ import annotations

from .models import (
    ClusterTarget,
    ImageTarget,
    PipelineDefinition,
    RecipientKind,
    RecipientSpec,
    SourceSpec,
    StageKind,
    StageSpec,
)

DEFAULT_REPO_NAME = "sample-cluster-app"
DEFAULT_CLUSTER_NAME = "stk-gameservers"
DEFAULT_MANIFEST = "sample-cluster-app-deployment.yml"


def default_stages(*, manifest: str = DEFAULT_MANIFEST) -> list[StageSpec]:
    """
    Unit test -> docker build/push -> EKS deployment.

    No stage declares outputs, so the source snapshot reaches all three.
    imageDetail.json is still written inside the build workspace.
    """
    return [
        StageSpec(
            name="unit-test",
            kind=StageKind.test,
            commands=["npm install", "npm test"],
            privileged=True,
            reports=["test-results/**/*"],
        ),
        StageSpec(
            name="docker-build",
            kind=StageKind.build,
            privileged=True,
            commands=[
                'docker build -t "$IMAGE_URI" .',
                'aws ecr get-login-password --region "$AWS_REGION"'
                ' | docker login --username AWS --password-stdin "$IMAGE_REPO_URI"',
                'docker push "$IMAGE_URI"',
            ],
        ),
        StageSpec(
            name="eks-deploy",
            kind=StageKind.deploy,
            privileged=True,
            manifest=manifest,
            commands=[
                'aws eks update-kubeconfig --region "$AWS_REGION" --name "$CLUSTER_NAME"',
                "kubectl apply -f rendered-manifest.yml",
            ],
        ),
    ]


def default_definition(
    *,
    account_id: str = "123456789012",
    region: str = "us-east-1",
    repo_name: str = DEFAULT_REPO_NAME,
    registry_repository: str = DEFAULT_REPO_NAME,
    cluster_name: str = DEFAULT_CLUSTER_NAME,
    source_location: str = DEFAULT_REPO_NAME,
    notify_phone: str = "+15550100",
    notify_email: str = "john.doe@example.com",
    base_image_version: str = "latest",
) -> PipelineDefinition:
    return PipelineDefinition(
        name="container-pipeline",
        source=SourceSpec(repo_name=repo_name, location=source_location, branch="main"),
        image=ImageTarget(
            registry_host=f"{account_id}.dkr.ecr.{region}.amazonaws.com",
            repository=registry_repository,
        ),
        cluster=ClusterTarget(name=cluster_name, region=region),
        base_image_version=base_image_version,
        recipients=[
            RecipientSpec(kind=RecipientKind.sms, address=notify_phone),
            RecipientSpec(kind=RecipientKind.email, address=notify_email),
        ],
        stages=default_stages(),
    )
