"""
테스트 공용 픽스처
스크립트된 kubectl 응답과 가짜 시계
"""

import itertools
import pytest

from kictl.errors import KubectlCommandError
from kictl.kubectl import CommandResult, ExecutorOptions, KubectlExecutor
from kictl.logger import init_logger


class FakeClock:
    """sleep 호출 시 시간만 전진하는 시계"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeRunner:
    """kubectl 인자 접두사로 응답을 돌려주는 가짜 runner"""

    def __init__(self, **kwargs):
        self.init_kwargs = kwargs
        self.calls = []
        self.timeouts = []
        self.rules = []
        self._pod_ids = itertools.count(1)

    def on(self, *prefix, output="", success=True, contains=None):
        """응답 등록. output 이 리스트면 순서대로 반환하고 마지막 값을 반복"""
        outputs = list(output) if isinstance(output, (list, tuple)) else [output]
        self.rules.insert(0, {"prefix": list(prefix), "contains": contains,
                              "outputs": outputs, "success": success})
        return self

    def node_command(self, node, output, phase="Succeeded", contains=None, pod_name=None):
        """kubectl debug -> phase 폴링 -> logs 흐름 등록"""
        pod_name = pod_name or f"node-debugger-{node}-{next(self._pod_ids):05d}"
        self.on("debug", f"node/{node}", contains=contains,
                output=f"Creating debugging pod {pod_name} with container debugger on node {node}.")
        self.on("get", "pod", pod_name, output=phase)
        self.on("logs", pod_name, output=output)
        return pod_name

    def commands(self, *prefix):
        return [call for call in self.calls if call[:len(prefix)] == list(prefix)]

    def run(self, args, timeout=None):
        args = list(args)
        self.calls.append(args)
        self.timeouts.append(timeout)

        for rule in self.rules:
            if args[:len(rule["prefix"])] != rule["prefix"]:
                continue
            if rule["contains"] is not None and rule["contains"] not in " ".join(args):
                continue

            outputs = rule["outputs"]
            output = outputs.pop(0) if len(outputs) > 1 else outputs[0]
            if rule["success"]:
                return CommandResult(True, output)
            return CommandResult(False, output, KubectlCommandError(args, 1, output))

        message = f'Error from server (NotFound): unexpected call {" ".join(args)}'
        return CommandResult(False, message, KubectlCommandError(args, 1, message))


@pytest.fixture(autouse=True)
def test_logger(tmp_path):
    """테스트마다 임시 디렉토리에 로거 초기화"""
    return init_logger(str(tmp_path / "logs"), "debug", True)


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_executor(runner, clock):
    """가짜 runner/시계를 쓰는 executor 생성기"""
    def factory(dry_run=False, exec_timeout=60.0, polling_interval=1.0):
        options = ExecutorOptions(dry_run=dry_run, polling_interval=polling_interval,
                                  exec_timeout=exec_timeout)
        return KubectlExecutor(options, runner=runner, clock=clock, sleep=clock.sleep)
    return factory


def node_labels_output(node, labels):
    """`kubectl get node <n> --show-labels` 형식 출력"""
    label_field = ",".join(f"{k}={v}" for k, v in labels.items()) or "<none>"
    return (
        "NAME   STATUS   ROLES    AGE   VERSION   LABELS\n"
        f"{node}   Ready    <none>   10d   v1.28.2   {label_field}"
    )
