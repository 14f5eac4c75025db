"""
kubectl executor 테스트
"""

import subprocess
import pytest

from kictl.errors import (
    KubectlCancelledError,
    KubectlCommandError,
    PodFailedError,
    PodNameExtractionError,
    PodTimeoutError,
)
from kictl.kubectl import (
    ExecutorOptions,
    KubectlRunner,
    extract_pod_name,
    infer_role,
    parse_labels_output,
)

from conftest import node_labels_output


def test_extract_pod_name():
    """디버그 파드 이름 추출 테스트"""
    output = "Creating debugging pod node-debugger-rsb4-q4cxv with container debugger on node rsb4."
    assert extract_pod_name(output) == "node-debugger-rsb4-q4cxv"
    assert extract_pod_name("pod/node-debugger-rsb4 created") is None


def test_exec_node_command_success(runner, make_executor):
    """노드 명령 실행 성공 테스트"""
    runner.node_command("rsb4", "eth0.100@eth0: <UP>")
    executor = make_executor()

    result = executor.exec_node_command("rsb4", "ip link show eth0.100")

    assert result.success == True
    assert result.output == "eth0.100@eth0: <UP>"
    assert result.error is None
    assert runner.commands("debug")[0] == [
        "debug", "node/rsb4", "--profile=sysadmin", "--image=busybox",
        "--", "chroot", "/host", "sh", "-c", "ip link show eth0.100",
    ]


def test_exec_node_command_polls_until_terminal(runner, clock, make_executor):
    """종료 phase 까지 폴링 테스트"""
    pod_name = runner.node_command("rsb4", "done")
    runner.on("get", "pod", pod_name, output=["Pending", "Running", "Succeeded"])
    executor = make_executor(polling_interval=1.0)

    result = executor.exec_node_command("rsb4", "true")

    assert result.success == True
    assert clock.sleeps == [1.0, 1.0]
    assert len(runner.commands("get", "pod", pod_name)) == 3


def test_logs_bounded_by_session_deadline(runner, clock, make_executor):
    """로그 조회도 세션 기한 안에서 실행"""
    pod_name = runner.node_command("rsb4", "done")
    runner.on("get", "pod", pod_name, output=["Running", "Succeeded"])
    executor = make_executor(exec_timeout=10.0, polling_interval=4.0)

    executor.exec_node_command("rsb4", "true")

    logs_index = runner.calls.index(["logs", pod_name])
    assert runner.timeouts[logs_index] == 6.0

    runner.calls.clear()
    runner.timeouts.clear()
    runner.on("get", "pod", pod_name, output=["Running", "Running", "Succeeded"])
    executor.exec_node_command("rsb4", "true", timeout=8.5)

    logs_index = runner.calls.index(["logs", pod_name])
    assert runner.timeouts[logs_index] == 1.0


def test_pod_name_extraction_failure_skips_polling(runner, make_executor):
    """파드 이름 추출 실패 시 폴링하지 않음"""
    runner.on("debug", "node/rsb4", output="warning: something unexpected happened")
    executor = make_executor()

    result = executor.exec_node_command("rsb4", "true")

    assert result.success == False
    assert isinstance(result.error, PodNameExtractionError)
    assert runner.commands("get", "pod") == []
    assert runner.commands("logs") == []


def test_pod_timeout_names_pod(runner, clock, make_executor):
    """타임아웃 에러에 파드 이름 포함"""
    pod_name = runner.node_command("rsb4", "never")
    runner.on("get", "pod", pod_name, output="Running")
    executor = make_executor(exec_timeout=5.0, polling_interval=1.0)

    result = executor.exec_node_command("rsb4", "sleep 600")

    assert result.success == False
    assert isinstance(result.error, PodTimeoutError)
    assert result.error.pod_name == pod_name
    assert pod_name in str(result.error)
    assert result.error.timeout == 5.0
    assert runner.commands("logs") == []


def test_ping_zero_packets_is_success(runner, make_executor):
    """ping 수신 0 출력은 Failed phase 여도 정상 종료"""
    output = "3 packets transmitted, 0 packets received, 100% packet loss"
    runner.node_command("rsb7", output, phase="Failed")
    executor = make_executor()

    result = executor.exec_node_command("rsb7", "ping -c 3 -W 2 10.1.100.11")

    assert result.success == True
    assert result.error is None
    assert result.output == output


def test_failed_phase_is_failure(runner, make_executor):
    """일반 명령의 Failed phase 는 실패"""
    pod_name = runner.node_command("rsb4", "RTNETLINK answers: File exists", phase="Failed")
    executor = make_executor()

    result = executor.exec_node_command("rsb4", "ip link add link eth0 name eth0.100 type vlan id 100")

    assert result.success == False
    assert isinstance(result.error, PodFailedError)
    assert result.error.pod_name == pod_name


def test_dry_run_mutations_do_not_call_kubectl(runner, make_executor):
    """dry-run 변경 작업은 kubectl 을 호출하지 않음"""
    executor = make_executor(dry_run=True)

    labeled = executor.label_node("rsb2", "openstack-role=control-plane")
    unlabeled = executor.unlabel_node("rsb2", "openstack-role")
    deleted = executor.delete_pod("node-debugger-rsb2-abcde")
    executed = executor.exec_node_command("rsb2", "ip link show")

    assert labeled.success and labeled.output == "node/rsb2 labeled"
    assert unlabeled.success and unlabeled.output == "node/rsb2 unlabeled"
    assert deleted.success and deleted.output == "pod/node-debugger-rsb2-abcde deleted"
    assert executed.success
    assert executed.output == "Command would be executed on node rsb2: ip link show"
    assert runner.calls == []


def test_dry_run_reads_still_run(runner, make_executor):
    """dry-run 에서도 조회는 실제 실행"""
    runner.on("get", "node", "rsb2", output="rsb2   Ready")
    executor = make_executor(dry_run=True)

    result = executor.get_node("rsb2")

    assert result.success == True
    assert runner.calls == [["get", "node", "rsb2"]]


def test_unlabel_absent_label_is_success(runner, make_executor):
    """이미 없는 레이블 제거는 성공"""
    runner.on("label", "node", "rsb2", success=False, output='label "openstack-role" not found.')
    executor = make_executor()

    result = executor.unlabel_node("rsb2", "openstack-role")

    assert result.success == True
    assert "already absent" in result.output


def test_unlabel_missing_node_is_failure(runner, make_executor):
    """노드가 없으면 레이블 제거 실패"""
    runner.on("label", "node", "ghost", success=False,
              output='Error from server (NotFound): nodes "ghost" not found')
    executor = make_executor()

    result = executor.unlabel_node("ghost", "openstack-role")

    assert result.success == False
    assert isinstance(result.error, KubectlCommandError)


def test_parse_labels_and_infer_role():
    """레이블 파싱 및 역할 추정 테스트"""
    output = node_labels_output("rsb5", {
        "kubernetes.io/hostname": "rsb5",
        "openstack-role": "storage",
        "ceph-node": "enabled",
    })
    labels = parse_labels_output(output)

    assert labels["openstack-role"] == "storage"
    assert infer_role(labels) == "storage"
    assert infer_role({"kubernetes.io/hostname": "rsb9"}) == "worker"
    assert parse_labels_output(node_labels_output("rsb9", {})) == {}


def test_get_node_role(runner, make_executor):
    """노드 역할 조회 테스트"""
    runner.on("get", "node", "rsb2", "--show-labels",
              output=node_labels_output("rsb2", {"openstack-control-plane": "enabled"}))
    executor = make_executor()

    assert executor.get_node_role("rsb2") == "control-plane"


def test_executor_options_test_mode(monkeypatch):
    """KICTL_TEST_MODE 는 폴링 간격만 0 으로 변경"""
    monkeypatch.setenv("KICTL_TEST_MODE", "true")
    options = ExecutorOptions.from_env(dry_run=True)

    assert options.polling_interval == 0
    assert options.dry_run == True
    assert options.exec_timeout == ExecutorOptions().exec_timeout


def test_runner_timeout(monkeypatch):
    """kubectl 호출 타임아웃은 취소 에러"""
    def fake_run(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

    monkeypatch.setattr("kictl.kubectl.subprocess.run", fake_run)
    result = KubectlRunner().run(["get", "nodes"], timeout=2.0)

    assert result.success == False
    assert isinstance(result.error, KubectlCancelledError)


def test_runner_missing_binary(monkeypatch):
    """kubectl 바이너리가 없으면 명령 실패"""
    def fake_run(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr("kictl.kubectl.subprocess.run", fake_run)
    result = KubectlRunner(kubeconfig="/tmp/kubeconfig").run(["get", "nodes"])

    assert result.success == False
    assert isinstance(result.error, KubectlCommandError)
    assert result.error.returncode is None


def test_runner_nonzero_exit(monkeypatch):
    """비정상 종료 코드 처리 테스트"""
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 1, stdout='Error from server (NotFound): nodes "x" not found\n')

    monkeypatch.setattr("kictl.kubectl.subprocess.run", fake_run)
    result = KubectlRunner(context="prod").run(["get", "node", "x"])

    assert result.success == False
    assert result.error.returncode == 1
    assert result.output == 'Error from server (NotFound): nodes "x" not found'
    assert calls[0] == ["kubectl", "--context", "prod", "get", "node", "x"]
