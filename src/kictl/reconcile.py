"""
조정 패스 공통 모듈
대상별 검증 -> 실행 -> 기록 -> 요약 흐름과 결과 리포트
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .errors import NodeNotFoundError
from .kubectl import KubectlExecutor


@dataclass
class OperationResult:
    """조정 패스 1회의 결과"""
    total_targets: int = 0
    successful_targets: int = 0
    failed_targets: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    errors: List[Exception] = field(default_factory=list)

    def record_success(self, target: str):
        self.successful_targets += 1

    def record_failure(self, target: str, *errors: Exception):
        if target not in self.failed_targets:
            self.failed_targets.append(target)
        self.errors.extend(errors)

    @property
    def ok(self) -> bool:
        return not self.failed_targets and not self.errors

    def summary(self) -> str:
        text = (f"{self.successful_targets}/{self.total_targets} succeeded, "
                f"{len(self.failed_targets)} failed")
        if self.failed_targets:
            text += f" ({', '.join(self.failed_targets)})"
        return text


class ReconcileService:
    """도메인별 조정 서비스 기반 클래스"""

    banner_width = 50

    def __init__(self, kubectl: KubectlExecutor, logger):
        self.kubectl = kubectl
        self.logger = logger

    @property
    def dry_run(self) -> bool:
        # dry-run 판단은 executor 하나에서만
        return self.kubectl.dry_run

    def log_start(self, operation: str, conf):
        name = conf.metadata.name or "unknown"
        self.logger.info("=" * self.banner_width)
        if self.dry_run:
            self.logger.info(f"🧪 DRY RUN: Simulating {operation} for {name} ({conf.kind} {conf.api_version})...")
        else:
            self.logger.info(f"Starting {operation} for {name} ({conf.kind} {conf.api_version})...")

    def validate_node(self, node_name: str, result: OperationResult) -> bool:
        """대상 노드 존재 확인. 실패 시 결과에 기록"""
        checked = self.kubectl.get_node(node_name)
        if checked.success:
            return True

        self.logger.error(f"Node {node_name} does not exist in the cluster")
        result.record_failure(node_name, NodeNotFoundError(node_name, checked.error))
        return False

    def log_summary(self, title: str, result: OperationResult, unit: str = "target"):
        self.logger.info("=" * self.banner_width)
        self.logger.info(f"📊 {title}:")
        self.logger.info(f"  Total {unit}s processed: {result.total_targets}")
        self.logger.info(f"  Successful operations: {result.successful_targets}")
        self.logger.info(f"  Failed operations: {len(result.failed_targets)}")
        if result.failed_targets:
            self.logger.warning(f"  Failed {unit}s: {', '.join(result.failed_targets)}")
