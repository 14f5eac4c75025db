"""
노드 탐색 모듈
논리 네트워크 이름을 노드 목록과 노드 IP 로 변환
"""

from typing import Iterable, List, Optional

from .config import NodeVLANConf
from .errors import ClusterQueryError, DiscoveryError, KictlError
from .kubectl import KubectlExecutor
from .logger import get_logger

ALL_NODES = "all"

# 네트워크 -> 노드 역할
NETWORK_ROLES = {
    "storage": "storage",
    "api": "control-plane",
    "tenant": "compute",
    "management": ALL_NODES,
}


class NodeDiscovery:
    """역할 레이블 또는 VLAN 매핑 기반 노드 탐색"""

    def __init__(self, kubectl: KubectlExecutor, vlan_config: Optional[NodeVLANConf] = None,
                 exclude_nodes: Iterable[str] = (), logger=None):
        self.kubectl = kubectl
        self.vlan_config = vlan_config
        self.exclude_nodes = set(exclude_nodes)
        self.logger = logger or get_logger()

    def is_excluded(self, node_name: str) -> bool:
        return node_name in self.exclude_nodes

    def resolve_nodes(self, network: str) -> List[str]:
        """네트워크에 속한 노드 목록 (제외 목록 적용)"""
        role = NETWORK_ROLES.get(network)
        if role is None:
            self.logger.warning(f"Unknown network {network}, using VLAN-based selection")
            return self._nodes_from_vlan(network)

        if role == ALL_NODES:
            nodes = [n for n in self.list_cluster_nodes() if not self._skip_excluded(n, network)]
            if not nodes:
                raise DiscoveryError(f"no nodes available for network {network} (after applying exclusions)")
            return nodes

        return self._nodes_by_role(role, network)

    def list_cluster_nodes(self) -> List[str]:
        """클러스터 전체 노드 이름"""
        listed = self.kubectl.get_all_nodes()
        if not listed.success:
            raise ClusterQueryError(f"failed to get cluster nodes: {listed.error}")

        nodes = []
        for line in listed.output.splitlines():
            line = line.strip()
            if not line:
                continue
            if line.startswith("node/"):
                line = line[len("node/"):]
            nodes.append(line)
        return nodes

    def node_ip_for_network(self, node_name: str, network: str) -> str:
        """VLAN 매핑에서 노드 IP 조회 (prefix 제거)"""
        vlan = self._vlan(network)
        address = vlan.node_mapping.get(node_name)
        if address is None:
            raise DiscoveryError(f"node {node_name} not found in network {network}")
        return address.split("/")[0]

    def _nodes_by_role(self, role: str, network: str) -> List[str]:
        nodes = []
        for node_name in self.list_cluster_nodes():
            try:
                node_role = self.kubectl.get_node_role(node_name)
            except KictlError as e:
                self.logger.warning(f"Failed to get role for node {node_name}: {e}")
                continue

            if node_role == role and not self._skip_excluded(node_name, network):
                nodes.append(node_name)

        if not nodes:
            raise DiscoveryError(f"no nodes found with role {role} (after applying exclusions)")

        self.logger.info(f"Found {len(nodes)} nodes with role {role}: {', '.join(nodes)}")
        return nodes

    def _nodes_from_vlan(self, network: str) -> List[str]:
        vlan = self._vlan(network)
        nodes = [n for n in vlan.node_mapping if not self._skip_excluded(n, network)]
        if not nodes:
            raise DiscoveryError(f"no nodes found for network {network}")
        return nodes

    def _vlan(self, network: str):
        if self.vlan_config is None:
            raise DiscoveryError("no VLAN configuration available for network mapping")
        vlan = self.vlan_config.vlans.get(network)
        if vlan is None:
            raise DiscoveryError(f"network {network} not found in VLAN configuration")
        return vlan

    def _skip_excluded(self, node_name: str, network: str) -> bool:
        if self.is_excluded(node_name):
            self.logger.info(f"Excluding node {node_name} from {network} network tests (in exclusion list)")
            return True
        return False
