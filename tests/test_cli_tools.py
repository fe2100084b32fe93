import pytest

from stagekit import StageActionError, StageTimeoutError

from deploy_orchestrator.collaborators import (
    DockerImageBuilder,
    EcrRegistryClient,
    GitSource,
    KubectlClusterClient,
    MavenBuildTool,
    default_collaborators,
)
from deploy_orchestrator.foundation.process import CommandResult


class FakeRunner:
    """Records argv and answers from a queue (default: exit 0, empty output)."""

    def __init__(self, responses=None):
        self.calls: list[dict] = []
        self.responses = list(responses or [])

    def __call__(self, argv, *, timeout_s, logger=None, cwd=None, input_text=None, env=None, check=True):
        self.calls.append(
            {"argv": list(argv), "timeout_s": timeout_s, "cwd": cwd, "input_text": input_text, "check": check}
        )
        if self.responses:
            returncode, stdout, stderr = self.responses.pop(0)
        else:
            returncode, stdout, stderr = 0, "", ""
        return CommandResult(
            argv=tuple(argv), returncode=returncode, stdout=stdout, stderr=stderr, duration_s=0.01
        )

    @property
    def argvs(self) -> list[list[str]]:
        return [call["argv"] for call in self.calls]


def test_git_clones_then_reads_short_revision(tmp_path):
    runner = FakeRunner([(0, "", ""), (0, "abc1234\n", "")])
    workspace = str(tmp_path / "ws")

    revision = GitSource(runner=runner).checkout(
        workspace=workspace, repo_url="https://example.com/app.git", branch="main", timeout_s=60
    )

    assert revision == "abc1234"
    assert runner.argvs == [
        ["git", "clone", "--depth", "1", "--branch", "main", "https://example.com/app.git", workspace],
        ["git", "-C", workspace, "rev-parse", "--short", "HEAD"],
    ]


def test_git_fetches_into_existing_clone(tmp_path):
    (tmp_path / ".git").mkdir()
    runner = FakeRunner([(0, "", ""), (0, "", ""), (0, "def5678\n", "")])

    revision = GitSource(runner=runner).checkout(
        workspace=str(tmp_path), repo_url="https://example.com/app.git", branch="release", timeout_s=60
    )

    assert revision == "def5678"
    assert runner.argvs[0][-4:] == ["--depth", "1", "origin", "release"]
    assert runner.argvs[1][-3:] == ["checkout", "--force", "FETCH_HEAD"]


def test_git_without_repo_url_only_reads_revision(tmp_path):
    runner = FakeRunner([(0, "0a1b2c3\n", "")])

    assert GitSource(runner=runner).checkout(
        workspace=str(tmp_path), repo_url=None, branch="main", timeout_s=60
    ) == "0a1b2c3"
    assert len(runner.calls) == 1


@pytest.mark.parametrize("skip_tests,expected_tail", [(False, "-Drevision=42"), (True, "-DskipTests")])
def test_maven_build_argv(tmp_path, skip_tests, expected_tail):
    runner = FakeRunner()

    MavenBuildTool(runner=runner).build(
        workspace=str(tmp_path), skip_tests=skip_tests, version="42", timeout_s=600
    )

    call = runner.calls[0]
    assert call["argv"][:4] == ["mvn", "clean", "package", "-B"]
    assert call["argv"][-1] == expected_tail
    assert call["cwd"] == str(tmp_path)


def test_docker_build_argv_carries_tags_args_and_labels():
    runner = FakeRunner()

    DockerImageBuilder(runner=runner).build(
        context_dir="/ws",
        dockerfile="/ws/Dockerfile",
        tags=["repo:42", "repo:latest"],
        build_args={"APP_VERSION": "42"},
        labels={"org.opencontainers.image.revision": "abc1234"},
        timeout_s=900,
    )

    assert runner.argvs[0] == [
        "docker",
        "build",
        "-f",
        "/ws/Dockerfile",
        "-t",
        "repo:42",
        "-t",
        "repo:latest",
        "--build-arg",
        "APP_VERSION=42",
        "--label",
        "org.opencontainers.image.revision=abc1234",
        "/ws",
    ]


def test_docker_remove_treats_missing_image_as_absent():
    runner = FakeRunner(
        [
            (0, "Untagged: repo:42\n", ""),
            (1, "", "Error response from daemon: No such image: repo:42"),
            (1, "", "Error response from daemon: conflict: image is being used by running container"),
        ]
    )
    images = DockerImageBuilder(runner=runner)

    assert images.remove("repo:42", timeout_s=60) is True
    assert images.remove("repo:42", timeout_s=60) is False
    with pytest.raises(StageActionError, match="docker image rm repo:42 failed"):
        images.remove("repo:42", timeout_s=60)
    assert all(call["check"] is False for call in runner.calls)


def test_ecr_login_pipes_password_on_stdin():
    runner = FakeRunner([(0, "s3cr3t\n", ""), (0, "Login Succeeded", "")])

    EcrRegistryClient(runner=runner).login(
        registry_host="123456789012.dkr.ecr.ap-south-1.amazonaws.com", region="ap-south-1", timeout_s=60
    )

    get_password, login = runner.calls
    assert get_password["argv"] == ["aws", "ecr", "get-login-password", "--region", "ap-south-1"]
    assert login["argv"] == [
        "docker",
        "login",
        "--username",
        "AWS",
        "--password-stdin",
        "123456789012.dkr.ecr.ap-south-1.amazonaws.com",
    ]
    assert login["input_text"] == "s3cr3t"
    assert "s3cr3t" not in " ".join(login["argv"])


def test_ecr_login_rejects_empty_token():
    runner = FakeRunner([(0, "\n", "")])

    with pytest.raises(StageActionError, match="empty token"):
        EcrRegistryClient(runner=runner).login(registry_host="h", region="ap-south-1", timeout_s=60)


def test_kubectl_apply_variants():
    runner = FakeRunner()
    cluster = KubectlClusterClient(runner=runner)

    cluster.update_context(region="ap-south-1", cluster_name="eks-cicd", timeout_s=60)
    cluster.apply_text("kind: Namespace\n", namespace=None, timeout_s=60)
    cluster.apply_file("/ws/k8s/service.yaml", namespace="springboot", timeout_s=60)

    assert runner.argvs == [
        ["aws", "eks", "update-kubeconfig", "--region", "ap-south-1", "--name", "eks-cicd"],
        ["kubectl", "apply", "-f", "-"],
        ["kubectl", "apply", "-f", "/ws/k8s/service.yaml", "-n", "springboot"],
    ]
    assert runner.calls[1]["input_text"] == "kind: Namespace\n"


def test_rollout_status_success_and_timeout():
    runner = FakeRunner(
        [
            (0, 'deployment "app" successfully rolled out\n', ""),
            (1, "Waiting for deployment rollout to finish\n", "error: timed out waiting for the condition"),
        ]
    )
    cluster = KubectlClusterClient(runner=runner)

    cluster.rollout_status("app", namespace="springboot", timeout_s=300)
    assert runner.calls[0]["argv"][-1] == "--timeout=300s"
    assert runner.calls[0]["timeout_s"] > 300

    with pytest.raises(StageTimeoutError) as excinfo:
        cluster.rollout_status("app", namespace="springboot", timeout_s=300)
    assert excinfo.value.reason == "timeout"


def test_rollout_status_other_failure_is_not_a_timeout():
    runner = FakeRunner([(1, "", 'Error from server (NotFound): deployments.apps "app" not found')])

    with pytest.raises(StageActionError) as excinfo:
        KubectlClusterClient(runner=runner).rollout_status("app", namespace="springboot", timeout_s=30)

    assert not isinstance(excinfo.value, StageTimeoutError)


def test_rollout_status_without_time_left_raises_before_running():
    runner = FakeRunner()

    with pytest.raises(StageTimeoutError):
        KubectlClusterClient(runner=runner).rollout_status("app", namespace="springboot", timeout_s=0)
    assert runner.calls == []


def test_find_running_pod_returns_first_name_or_none():
    runner = FakeRunner([(0, "app-1 app-2", ""), (0, "", "")])
    cluster = KubectlClusterClient(runner=runner)

    assert cluster.find_running_pod(namespace="springboot", selector="app=app", timeout_s=30) == "app-1"
    assert cluster.find_running_pod(namespace="springboot", selector="app=app", timeout_s=30) is None
    assert "--field-selector=status.phase=Running" in runner.argvs[0]


def test_node_address_falls_back_to_internal_ip():
    runner = FakeRunner([(0, "", ""), (0, "10.0.1.5 10.0.1.6", "")])

    assert KubectlClusterClient(runner=runner).node_address(timeout_s=30) == "10.0.1.5"
    assert "ExternalIP" in runner.argvs[0][-1]
    assert "InternalIP" in runner.argvs[1][-1]


def test_exec_in_pod_does_not_raise_on_failure():
    runner = FakeRunner([(22, "", "curl: (22) The requested URL returned error: 503")])

    result = KubectlClusterClient(runner=runner).exec_in_pod(
        "app-1", ["curl", "-fsS", "http://localhost:8080/actuator/health"], namespace="springboot", timeout_s=15
    )

    assert result.returncode == 22
    assert runner.argvs[0][:6] == ["kubectl", "exec", "-n", "springboot", "app-1", "--"]


def test_default_collaborators_share_the_runner():
    runner = FakeRunner([(0, "abc1234\n", "")])

    collaborators = default_collaborators(runner=runner)
    collaborators.source.checkout(workspace="/ws", repo_url=None, branch="main", timeout_s=10)

    assert runner.argvs == [["git", "-C", "/ws", "rev-parse", "--short", "HEAD"]]
