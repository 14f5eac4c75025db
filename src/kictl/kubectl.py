"""
kubectl 실행 모듈
kubectl 호출 어댑터, 노드 원격 명령 실행, dry-run 시뮬레이션
"""

import os
import re
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .errors import (
    KictlError,
    KubectlCancelledError,
    KubectlCommandError,
    PodNameExtractionError,
    PodTimeoutError,
)
from .logger import get_logger
from .probes import TERMINAL_PHASES, interpret_result

DEBUG_POD_PATTERN = re.compile(r"Creating debugging pod ([a-zA-Z0-9-]+) with container")
DEFAULT_DEBUG_IMAGE = "busybox"
DEFAULT_EXEC_TIMEOUT = 60.0
DEFAULT_POLLING_INTERVAL = 1.0
TEST_MODE_ENV = "KICTL_TEST_MODE"

# 레이블 문자열로 노드 역할 추정 (먼저 매칭되는 역할 우선)
ROLE_LABEL_HINTS = [
    ("control-plane", [
        "openstack-role=control-plane",
        "cluster.openstack.io/role=control-plane",
        "openstack-control-plane=enabled",
        "node-role.kubernetes.io/control-plane",
        "node-role.kubernetes.io/master",
    ]),
    ("storage", [
        "openstack-role=storage",
        "cluster.openstack.io/role=storage",
        "openstack-storage-node=enabled",
        "ceph-node=enabled",
        "node-role.kubernetes.io/storage",
    ]),
    ("compute", [
        "openstack-role=compute",
        "cluster.openstack.io/role=compute",
        "openstack-compute-node=enabled",
        "nova-compute=enabled",
        "node-role.kubernetes.io/compute",
    ]),
]
DEFAULT_ROLE = "worker"


@dataclass(frozen=True)
class CommandResult:
    """kubectl 호출 결과"""
    success: bool
    output: str = ""
    error: Optional[KictlError] = None


@dataclass(frozen=True)
class ExecutorOptions:
    """executor 실행 옵션 (생성 시 고정)"""
    dry_run: bool = False
    polling_interval: float = DEFAULT_POLLING_INTERVAL
    exec_timeout: float = DEFAULT_EXEC_TIMEOUT
    debug_image: str = DEFAULT_DEBUG_IMAGE

    @classmethod
    def from_env(cls, dry_run: bool = False, **kwargs) -> "ExecutorOptions":
        """환경 변수를 반영한 옵션 생성 (KICTL_TEST_MODE=true 이면 폴링 간격 0)"""
        if os.environ.get(TEST_MODE_ENV) == "true":
            kwargs["polling_interval"] = 0
        return cls(dry_run=dry_run, **kwargs)


@dataclass
class DebugSession:
    """노드 명령 1회 실행에 대응하는 디버그 파드 세션"""
    node_name: str
    command: str
    pod_name: str
    created_at: float
    deadline: float
    phase: str = "Pending"
    timed_out: bool = False

    @property
    def state(self) -> str:
        if self.timed_out:
            return "timed-out"
        if self.phase == "Succeeded":
            return "succeeded"
        if self.phase == "Failed":
            return "failed"
        return "pending"


def parse_labels_output(output: str) -> Dict[str, str]:
    """`kubectl get node <name> --show-labels` 출력에서 레이블 파싱"""
    lines = [line for line in (output or "").splitlines() if line.strip()]
    if not lines:
        return {}

    row = lines[-1]
    if row.split()[0] == "NAME" and len(lines) == 1:
        return {}

    label_field = row.split()[-1]
    if label_field == "<none>":
        return {}

    labels = {}
    for item in label_field.split(","):
        if not item:
            continue
        key, _, value = item.partition("=")
        labels[key] = value
    return labels


def infer_role(labels: Dict[str, str]) -> str:
    """레이블로 노드 역할 추정. 매칭되지 않으면 worker"""
    items = [f"{key}={value}" for key, value in labels.items()]
    for role, hints in ROLE_LABEL_HINTS:
        for hint in hints:
            if any(hint in item for item in items):
                return role
    return DEFAULT_ROLE


def is_label_absent(output: str, label_key: str) -> bool:
    """레이블 제거 실패 출력이 '레이블 없음' 인지 확인 (노드 없음과 구분)"""
    pattern = re.compile(r'label "?' + re.escape(label_key) + r'"? not found')
    return bool(pattern.search(output or ""))


def extract_pod_name(output: str) -> Optional[str]:
    """kubectl debug 출력에서 파드 이름 추출

    "Creating debugging pod node-debugger-rsb4-q4cxv with container debugger on node rsb4."
    -> "node-debugger-rsb4-q4cxv"
    """
    match = DEBUG_POD_PATTERN.search(output or "")
    if match:
        return match.group(1)
    return None


class KubectlRunner:
    """kubectl 프로세스 호출 어댑터"""

    def __init__(self, binary: str = "kubectl", kubeconfig: Optional[str] = None,
                 context: Optional[str] = None):
        self.binary = binary
        self.kubeconfig = kubeconfig
        self.context = context
        self.logger = get_logger()

    def _base_command(self) -> List[str]:
        cmd = [self.binary]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        if self.context:
            cmd.extend(["--context", self.context])
        return cmd

    def run(self, args: List[str], timeout: Optional[float] = None) -> CommandResult:
        """kubectl 명령 실행 (재시도 없음)"""
        self.logger.debug(f"Running: kubectl {' '.join(args)}")

        try:
            result = subprocess.run(
                self._base_command() + list(args),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=timeout
            )
        except subprocess.TimeoutExpired as e:
            output = e.output or ""
            if isinstance(output, bytes):
                output = output.decode("utf-8", errors="replace")
            error = KubectlCancelledError(args, timeout)
            self.logger.error(f"Command cancelled: {error}")
            return CommandResult(False, output.strip(), error)
        except FileNotFoundError:
            error = KubectlCommandError(args, None)
            self.logger.error(f"Command failed: {error}")
            return CommandResult(False, "", error)

        output = (result.stdout or "").strip()
        if result.returncode != 0:
            self.logger.error(f"Command failed: {output}")
            return CommandResult(False, output, KubectlCommandError(args, result.returncode, output))

        self.logger.debug(f"Command output: {output}")
        return CommandResult(True, output)


class KubectlExecutor:
    """노드 작업용 kubectl executor"""

    def __init__(self, options: Optional[ExecutorOptions] = None,
                 runner: Optional[KubectlRunner] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.options = options or ExecutorOptions()
        self.runner = runner or KubectlRunner()
        self.logger = get_logger()
        self._clock = clock
        self._sleep = sleep

    @property
    def dry_run(self) -> bool:
        return self.options.dry_run

    def _simulate(self, args: List[str], output: str) -> CommandResult:
        self.logger.debug(f"DRY RUN: Would run: kubectl {' '.join(args)}")
        return CommandResult(True, output)

    # --- 조회 (dry-run 에서도 실제 실행) ---

    def get_node(self, node_name: str) -> CommandResult:
        """노드 조회"""
        return self.runner.run(["get", "node", node_name])

    def get_all_nodes(self) -> CommandResult:
        """전체 노드 목록 (node/<name> 형식)"""
        return self.runner.run(["get", "nodes", "-o", "name"])

    def get_node_labels(self, node_name: str) -> CommandResult:
        """노드 레이블 조회"""
        return self.runner.run(["get", "node", node_name, "--show-labels"])

    def get_node_role(self, node_name: str) -> str:
        """노드 역할 조회 (레이블 기반 추정)"""
        result = self.get_node_labels(node_name)
        if not result.success:
            raise result.error or KictlError(f"failed to get labels for node {node_name}")

        role = infer_role(parse_labels_output(result.output))
        if role == DEFAULT_ROLE:
            self.logger.debug(f"No known role label on node {node_name}, defaulting to {DEFAULT_ROLE}")
        return role

    def get_pods(self, field_selector: str = "", label_selector: str = "") -> CommandResult:
        """파드 목록 조회 (pod/<name> 형식)"""
        args = ["get", "pods", "-o", "name"]
        if field_selector:
            args.extend(["--field-selector", field_selector])
        if label_selector:
            args.extend(["--selector", label_selector])
        return self.runner.run(args)

    # --- 변경 (dry-run 시 시뮬레이션) ---

    def label_node(self, node_name: str, label: str, overwrite: bool = True) -> CommandResult:
        """노드에 레이블 적용"""
        args = ["label", "node", node_name, label]
        if overwrite:
            args.append("--overwrite")

        if self.dry_run:
            return self._simulate(args, f"node/{node_name} labeled")
        return self.runner.run(args)

    def unlabel_node(self, node_name: str, label_key: str) -> CommandResult:
        """노드에서 레이블 제거"""
        args = ["label", "node", node_name, f"{label_key}-"]

        if self.dry_run:
            return self._simulate(args, f"node/{node_name} unlabeled")

        result = self.runner.run(args)
        if not result.success and is_label_absent(result.output, label_key):
            # 이미 없는 레이블 제거는 성공으로 처리
            self.logger.debug(f"Label {label_key} already absent on node {node_name}")
            return CommandResult(True, f"node/{node_name} unlabeled (label {label_key} already absent)")
        return result

    def delete_pod(self, pod_name: str) -> CommandResult:
        """파드 삭제"""
        args = ["delete", "pod", pod_name]

        if self.dry_run:
            return self._simulate(args, f"pod/{pod_name} deleted")
        return self.runner.run(args)

    def exec_node_command(self, node_name: str, command: str,
                          timeout: Optional[float] = None) -> CommandResult:
        """kubectl debug 파드로 노드에서 셸 명령 실행

        kubectl debug 는 파드 생성 메시지만 바로 반환하므로, 파드 이름을 추출한 뒤
        종료 phase 까지 폴링하고 로그를 가져와 결과를 해석한다.
        """
        args = [
            "debug", f"node/{node_name}",
            "--profile=sysadmin",
            f"--image={self.options.debug_image}",
            "--", "chroot", "/host", "sh", "-c", command,
        ]

        if self.dry_run:
            return self._simulate(args, f"Command would be executed on node {node_name}: {command}")

        created = self.runner.run(args)
        if not created.success:
            return created

        pod_name = extract_pod_name(created.output)
        if not pod_name:
            error = PodNameExtractionError(created.output)
            self.logger.error(str(error))
            return CommandResult(False, created.output, error)

        timeout = self.options.exec_timeout if timeout is None else timeout
        now = self._clock()
        session = DebugSession(
            node_name=node_name,
            command=command,
            pod_name=pod_name,
            created_at=now,
            deadline=now + timeout,
        )
        self.logger.debug(f"Debug pod {pod_name} created on node {node_name}")
        return self._wait_for_completion(session, timeout)

    def _wait_for_completion(self, session: DebugSession, timeout: float) -> CommandResult:
        phase_args = ["get", "pod", session.pod_name, "-o", "jsonpath={.status.phase}"]

        while True:
            remaining = session.deadline - self._clock()
            if remaining <= 0:
                session.timed_out = True
                error = PodTimeoutError(session.pod_name, timeout)
                self.logger.error(str(error))
                return CommandResult(False, "", error)

            polled = self.runner.run(phase_args, timeout=remaining)
            if polled.success and polled.output in TERMINAL_PHASES:
                session.phase = polled.output
                break

            # 파드가 아직 보이지 않는 경우 등은 다음 주기에 재시도
            self._sleep(self.options.polling_interval)

        # 종료 후에도 세션 기한을 넘기지 않도록 제한
        logs = self.runner.run(["logs", session.pod_name],
                               timeout=max(session.deadline - self._clock(), 1.0))
        if not logs.success:
            error = KictlError(f"failed to get logs from pod {session.pod_name}: {logs.error}")
            self.logger.error(str(error))
            return CommandResult(False, logs.output, error)

        success, error = interpret_result(session.command, session.phase, logs.output, session.pod_name)
        self.logger.debug(
            f"Debug pod {session.pod_name} finished: phase={session.phase} state={session.state} success={success}"
        )
        return CommandResult(success, logs.output, error)
