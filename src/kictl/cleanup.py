"""
디버그 파드 정리 모듈
kubectl debug 로 생성된 임시 파드를 이름 패턴으로 찾아 삭제
"""

import time
from typing import Callable, List

from .kubectl import KubectlExecutor

DEBUG_POD_NAME_PATTERN = "node-debugger"
DEFAULT_SETTLE_DELAY = 3.0


def cleanup_debug_pods(kubectl: KubectlExecutor, logger,
                       settle_delay: float = DEFAULT_SETTLE_DELAY,
                       pattern: str = DEBUG_POD_NAME_PATTERN,
                       sleep: Callable[[float], None] = time.sleep) -> List[str]:
    """남아 있는 디버그 파드 삭제

    실패는 경고로만 기록하고 예외를 올리지 않는다.

    Returns:
        List[str]: 삭제된 파드 이름
    """
    logger.info("🧹 Cleaning up debug pods...")

    # 파드가 종료 상태로 전환될 시간
    if settle_delay > 0:
        sleep(settle_delay)

    listed = kubectl.get_pods()
    if not listed.success:
        logger.warning(f"Failed to get pods: {listed.error}")
        return []

    debug_pods = []
    for line in listed.output.splitlines():
        name = line.strip()
        if name and pattern in name:
            debug_pods.append(name[len("pod/"):] if name.startswith("pod/") else name)

    deleted = []
    for pod_name in debug_pods:
        result = kubectl.delete_pod(pod_name)
        if result.success:
            deleted.append(pod_name)
        else:
            logger.warning(f"Failed to delete pod {pod_name}: {result.error}")

    if deleted:
        logger.info(f"✅ Cleaned up {len(deleted)} debug pods")
    else:
        logger.info("✅ No debug pods to clean up")
    return deleted
