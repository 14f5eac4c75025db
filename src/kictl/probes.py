"""
원격 명령 결과 해석 모듈
디버그 파드의 종료 phase와 출력으로 명령 성공 여부를 판정
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .errors import KictlError, PodFailedError

PHASE_SUCCEEDED = "Succeeded"
PHASE_FAILED = "Failed"
TERMINAL_PHASES = (PHASE_SUCCEEDED, PHASE_FAILED)

# busybox: "3 packets transmitted, 0 packets received, 100% packet loss"
# iputils: "3 packets transmitted, 0 received, 100% packet loss"
ZERO_PACKETS_PATTERN = re.compile(r"(?<!\d)0 (?:packets )?received")


@dataclass(frozen=True)
class ProbeFamily:
    """출력 기반으로 판정하는 명령 계열"""
    name: str
    matches: Callable[[str], bool]
    expected_negative: Callable[[str], bool]


def has_zero_packets(output: str) -> bool:
    """ping 출력에 '수신 0' 시그니처가 있는지 확인"""
    return bool(ZERO_PACKETS_PATTERN.search(output or ""))


def _is_ping(command: str) -> bool:
    return command.strip().split(" ", 1)[0] in ("ping", "ping6")


PROBE_FAMILIES: List[ProbeFamily] = [
    ProbeFamily(name="ping", matches=_is_ping, expected_negative=has_zero_packets),
]


def find_probe_family(command: str) -> Optional[ProbeFamily]:
    """명령에 해당하는 프로브 계열 반환 (없으면 None)"""
    for family in PROBE_FAMILIES:
        if family.matches(command):
            return family
    return None


def is_probe_command(command: str) -> bool:
    return find_probe_family(command) is not None


def interpret_result(command: str, phase: str, output: str,
                     pod_name: str) -> Tuple[bool, Optional[KictlError]]:
    """종료된 디버그 파드의 결과 해석

    Args:
        command: 노드에서 실행한 셸 명령
        phase: 파드의 종료 phase (Succeeded/Failed)
        output: 파드 로그
        pod_name: 디버그 파드 이름

    Returns:
        (성공 여부, 에러)

    도달성 프로브는 '수신 0' 시그니처가 있으면 파드 phase와 무관하게
    정상 종료로 본다. 대상이 응답하지 않는 것은 인프라 장애가 아니다.
    """
    family = find_probe_family(command)
    if family is not None and family.expected_negative(output):
        return True, None

    if phase == PHASE_SUCCEEDED:
        return True, None

    return False, PodFailedError(pod_name, output)


def probe_reached_target(output: str) -> bool:
    """정상 종료된 ping 출력으로 대상 응답 여부 판정"""
    return not has_zero_packets(output)
