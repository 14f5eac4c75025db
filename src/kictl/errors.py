"""
에러 정의 모듈
kubectl 호출, 원격 실행, 검증, 설정 단계별 예외 타입
"""

from typing import Any, List, Optional


class KictlError(Exception):
    """kictl 기본 예외"""


class ConfigError(KictlError):
    """설정 문서 오류 (형식 불량, 필수 항목 누락)"""


class KubectlCommandError(KictlError):
    """kubectl 실행 실패 (비정상 종료, 바이너리 없음)"""

    def __init__(self, args: List[str], returncode: Optional[int], output: str = ""):
        self.args_list = list(args)
        self.returncode = returncode
        self.output = output
        command = "kubectl " + " ".join(self.args_list)
        if returncode is None:
            message = f"{command}: kubectl executable not found"
        else:
            message = f"{command}: exit status {returncode}"
        if output:
            message = f"{message}: {output}"
        super().__init__(message)


class KubectlCancelledError(KictlError):
    """kubectl 호출이 타임아웃으로 취소됨"""

    def __init__(self, args: List[str], timeout: float):
        self.args_list = list(args)
        self.timeout = timeout
        super().__init__(
            f"kubectl {' '.join(self.args_list)}: cancelled after {timeout:.1f}s"
        )


class PodNameExtractionError(KictlError):
    """kubectl debug 출력에서 파드 이름을 찾지 못함"""

    def __init__(self, output: str):
        self.output = output
        super().__init__(f"failed to extract pod name from debug output: {output}")


class PodTimeoutError(KictlError):
    """디버그 파드가 제한 시간 내에 종료 상태에 도달하지 못함"""

    def __init__(self, pod_name: str, timeout: float):
        self.pod_name = pod_name
        self.timeout = timeout
        super().__init__(
            f"timeout waiting for pod {pod_name} to complete after {timeout:g}s"
        )


class PodFailedError(KictlError):
    """디버그 파드가 실패 상태로 종료됨"""

    def __init__(self, pod_name: str, output: str):
        self.pod_name = pod_name
        self.output = output
        super().__init__(f"pod {pod_name} failed: {output}")


class NodeNotFoundError(KictlError):
    """대상 노드가 클러스터에 없음"""

    def __init__(self, node_name: str, cause: Optional[BaseException] = None):
        self.node_name = node_name
        self.cause = cause
        message = f"node {node_name} does not exist in the cluster"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class DiscoveryError(KictlError):
    """네트워크 이름을 노드/주소로 해석하지 못함"""


class ClusterQueryError(KictlError):
    """클러스터 노드 목록 조회 실패 (패스 전체 중단 사유)"""


class PassAbortedError(KictlError):
    """조정 패스가 중간에 중단됨. 부분 결과를 함께 전달"""

    def __init__(self, message: str, result: Any = None):
        self.result = result
        super().__init__(message)
