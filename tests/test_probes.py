"""
원격 명령 결과 해석 테스트
"""

from kictl.errors import PodFailedError
from kictl.probes import (
    has_zero_packets,
    interpret_result,
    is_probe_command,
    probe_reached_target,
)

BUSYBOX_LOSS = (
    "PING 10.1.100.11 (10.1.100.11): 56 data bytes\n\n"
    "--- 10.1.100.11 ping statistics ---\n"
    "3 packets transmitted, 0 packets received, 100% packet loss"
)
IPUTILS_LOSS = "3 packets transmitted, 0 received, 100% packet loss, time 2041ms"
REACHED = "3 packets transmitted, 3 packets received, 0% packet loss"


def test_zero_packets_signature():
    """수신 0 시그니처 인식"""
    assert has_zero_packets(BUSYBOX_LOSS) == True
    assert has_zero_packets(IPUTILS_LOSS) == True
    assert has_zero_packets(REACHED) == False
    assert has_zero_packets("3 packets transmitted, 10 received") == False


def test_probe_command_detection():
    """프로브 명령 판별"""
    assert is_probe_command("ping -c 3 -W 2 10.1.100.11") == True
    assert is_probe_command("  ping6 fe80::1") == True
    assert is_probe_command("ip link show") == False
    assert is_probe_command("echo ping") == False


def test_probe_negative_overrides_failed_phase():
    """도달 실패 프로브는 Failed phase 라도 성공"""
    success, error = interpret_result("ping -c 3 10.1.100.11", "Failed", BUSYBOX_LOSS, "node-debugger-rsb7-x")
    assert success == True
    assert error is None


def test_non_probe_failed_phase():
    """일반 명령은 phase 로 판정"""
    success, error = interpret_result("ip link show eth0.100", "Failed", "Device not found", "node-debugger-rsb2-y")
    assert success == False
    assert isinstance(error, PodFailedError)
    assert error.pod_name == "node-debugger-rsb2-y"

    success, error = interpret_result("ip link show eth0.100", "Succeeded", "", "node-debugger-rsb2-y")
    assert success == True
    assert error is None


def test_probe_failed_without_signature():
    """시그니처 없는 ping 실패는 파드 실패"""
    success, error = interpret_result("ping -c 3 badhost", "Failed", "ping: bad address 'badhost'", "p")
    assert success == False
    assert isinstance(error, PodFailedError)


def test_probe_reached_target():
    """도달 여부 판정"""
    assert probe_reached_target(REACHED) == True
    assert probe_reached_target(IPUTILS_LOSS) == False
