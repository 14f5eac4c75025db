"""
노드 레이블 조정 모듈
NodeLabelConf 에 선언된 역할별 레이블 적용/제거/검증
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from .config import NodeLabelConf, NodeRole
from .errors import KictlError
from .kubectl import KubectlExecutor, parse_labels_output
from .logger import get_logger
from .reconcile import OperationResult, ReconcileService

OP_APPLY = "apply"
OP_REMOVE = "remove"


@dataclass(frozen=True)
class LabelerOptions:
    """레이블 서비스 옵션"""
    validate_nodes: bool = True
    verbose: bool = False


class LabelingService(ReconcileService):
    """노드 레이블 서비스"""

    def __init__(self, kubectl: KubectlExecutor, options: Optional[LabelerOptions] = None, logger=None):
        super().__init__(kubectl, logger or get_logger())
        self.options = options or LabelerOptions()

    def apply_labels(self, conf: NodeLabelConf) -> OperationResult:
        """설정의 모든 레이블 적용"""
        return self._process_labels(conf, OP_APPLY)

    def remove_labels(self, conf: NodeLabelConf) -> OperationResult:
        """설정의 모든 레이블 제거"""
        return self._process_labels(conf, OP_REMOVE)

    def verify_labels(self, conf: NodeLabelConf) -> OperationResult:
        """적용된 레이블과 설정 비교"""
        result = OperationResult()
        self.logger.info("🔍 Verifying applied labels...")

        for role in conf.node_roles.values():
            for node_name in role.nodes:
                result.total_targets += 1

                queried = self.kubectl.get_node_labels(node_name)
                if not queried.success:
                    self.logger.error(f"Failed to verify labels on node {node_name}: {queried.error}")
                    result.record_failure(
                        node_name, queried.error or KictlError(f"failed to get labels for node {node_name}"))
                    continue

                current = parse_labels_output(queried.output)
                verified = []
                for key, value in role.labels.items():
                    expected = f"{key}={value}"
                    if current.get(key) == value:
                        self.logger.info(f"✅ Verified label {expected} on node {node_name}")
                        verified.append(expected)
                    else:
                        self.logger.warning(f"⚠️  Label {expected} not found on node {node_name}")

                result.details.setdefault(node_name, []).extend(verified)
                if len(verified) == len(role.labels):
                    result.record_success(node_name)
                else:
                    missing = len(role.labels) - len(verified)
                    result.record_failure(
                        node_name,
                        KictlError(f"{missing} label(s) missing on node {node_name}")
                    )

        return result

    def get_current_state(self, nodes: List[str]) -> Dict[str, Dict[str, str]]:
        """노드별 현재 레이블 조회"""
        state = {}
        for node_name in nodes:
            queried = self.kubectl.get_node_labels(node_name)
            if not queried.success:
                raise KictlError(f"failed to get labels for node {node_name}: {queried.error}")
            state[node_name] = parse_labels_output(queried.output)
        return state

    def _process_labels(self, conf: NodeLabelConf, operation: str) -> OperationResult:
        result = OperationResult()
        self.log_start(f"label {operation}", conf)

        for role_key, role in conf.node_roles.items():
            role_name = role_key.replace("_", " ").title()
            self.logger.info(f"Processing {role_name} role with {len(role.nodes)} nodes...")
            if role.description:
                self.logger.info(f"  Description: {role.description}")
            self.logger.info(f"  Labels: {', '.join(role.label_strings())}")

            for node_name in role.nodes:
                result.total_targets += 1
                self.logger.info(f"  Processing node: {node_name}")
                if self._process_node(node_name, role, operation, result):
                    result.record_success(node_name)

            self.logger.info(f"Completed {role_name} role processing")

        self.log_summary("Operation Summary", result, unit="node assignment")
        return result

    def _process_node(self, node_name: str, role: NodeRole, operation: str,
                      result: OperationResult) -> bool:
        if self.options.validate_nodes and not self.validate_node(node_name, result):
            return False

        processed = []
        errors = []
        for key, value in role.labels.items():
            if operation == OP_REMOVE:
                outcome = self.kubectl.unlabel_node(node_name, key)
                label = f"-{key}"
                if outcome.success:
                    self._log_detail(f"✅ Removed label {key} from node {node_name}: {outcome.output}")
            else:
                label = f"{key}={value}"
                outcome = self.kubectl.label_node(node_name, label, overwrite=True)
                if outcome.success:
                    self._log_detail(f"✅ Applied label {label} to node {node_name}: {outcome.output}")

            if outcome.success:
                processed.append(label)
            else:
                self.logger.error(f"Failed to process label {key} on node {node_name}: {outcome.error}")
                errors.append(outcome.error or KictlError(f"label {key} failed on node {node_name}"))

        # 일부만 성공해도 성공한 레이블은 기록
        if processed:
            result.details.setdefault(node_name, []).extend(processed)

        if errors:
            result.record_failure(node_name, *errors)
            return False
        return True

    def _log_detail(self, message: str):
        # 레이블 단위 상세 로그는 verbose 일 때만 콘솔에 표시
        if self.options.verbose:
            self.logger.info(message)
        else:
            self.logger.debug(message)
