"""
VLAN 설정 모듈
NodeVLANConf 에 선언된 VLAN 인터페이스를 디버그 파드로 노드에 생성/제거/검증
"""

import ipaddress
import re
import shlex
import yaml
from dataclasses import dataclass
from typing import Dict, List, Optional

from .cleanup import DEFAULT_SETTLE_DELAY, cleanup_debug_pods
from .config import DEFAULT_INTERFACE, NodeVLANConf, VLANConfig
from .errors import ConfigError, KictlError
from .kubectl import KubectlExecutor
from .logger import get_logger
from .reconcile import OperationResult, ReconcileService

OP_CONFIGURE = "configure"
OP_REMOVE = "remove"

NETPLAN_DIR = "/etc/netplan"

# ip -o -d link show type vlan
# "5: eth0.100@eth0: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 ... vlan protocol 802.1Q id 100 <REORDER_HDR> ..."
LINK_LINE = re.compile(r"^\d+:\s+([^@:\s]+)@([^:\s]+):.*?\bvlan protocol \S+ id (\d+)")
# ip -o -4 addr show
# "5: eth0.100    inet 10.1.100.11/24 brd 10.1.100.255 scope global eth0.100\       valid_lft forever ..."
ADDR_LINE = re.compile(r"^\d+:\s+(\S+)\s+inet\s+(\S+)")


@dataclass
class VLANInterfaceInfo:
    """노드에 설정된 VLAN 인터페이스 정보"""
    vlan_name: str
    vlan_id: int
    interface: str
    ip_address: str
    phys_interface: str
    subnet: str = ""


@dataclass(frozen=True)
class VLANOptions:
    """VLAN 서비스 옵션"""
    validate_connectivity: bool = True
    persistent_config: bool = False
    default_interface: str = DEFAULT_INTERFACE
    verbose: bool = False
    cleanup_delay: float = DEFAULT_SETTLE_DELAY


def netplan_path(vlan_name: str) -> str:
    return f"{NETPLAN_DIR}/60-kictl-{vlan_name}.yaml"


def render_netplan(vlan_config: VLANConfig, vlan_interface: str, phys_interface: str,
                   ip_address: str) -> str:
    """영구 설정용 netplan 문서 생성"""
    document = {
        "network": {
            "version": 2,
            "vlans": {
                vlan_interface: {
                    "id": vlan_config.id,
                    "link": phys_interface,
                    "addresses": [ip_address],
                }
            },
        }
    }
    return yaml.safe_dump(document, default_flow_style=False, sort_keys=False)


def parse_vlan_interfaces(output: str) -> List[VLANInterfaceInfo]:
    """`ip -o -d link show type vlan; ip -o -4 addr show` 출력 파싱"""
    links = []
    addresses: Dict[str, str] = {}

    for line in (output or "").splitlines():
        link = LINK_LINE.search(line)
        if link:
            links.append((link.group(1), link.group(2), int(link.group(3))))
            continue
        addr = ADDR_LINE.search(line)
        if addr:
            addresses.setdefault(addr.group(1), addr.group(2))

    interfaces = []
    for name, phys, vlan_id in links:
        ip_address = addresses.get(name, "")
        subnet = ""
        if ip_address:
            subnet = str(ipaddress.ip_interface(ip_address).network)
        interfaces.append(VLANInterfaceInfo(
            vlan_name="",
            vlan_id=vlan_id,
            interface=name,
            ip_address=ip_address,
            phys_interface=phys,
            subnet=subnet,
        ))
    return interfaces


class VLANService(ReconcileService):
    """VLAN 설정 서비스"""

    banner_width = 60

    def __init__(self, kubectl: KubectlExecutor, options: Optional[VLANOptions] = None, logger=None):
        super().__init__(kubectl, logger or get_logger())
        self.options = options or VLANOptions()

    def configure_vlans(self, conf: NodeVLANConf) -> OperationResult:
        """설정의 모든 VLAN 생성"""
        return self._process_vlans(conf, OP_CONFIGURE)

    def remove_vlans(self, conf: NodeVLANConf) -> OperationResult:
        """설정의 모든 VLAN 제거"""
        return self._process_vlans(conf, OP_REMOVE)

    def verify_vlans(self, conf: NodeVLANConf) -> OperationResult:
        """노드의 VLAN 인터페이스와 설정 비교"""
        result = OperationResult()
        self.logger.info("🔍 Verifying VLAN configuration...")

        for node_name in conf.all_nodes():
            result.total_targets += 1

            verified, errors = self._verify_node(node_name, conf)
            result.details[node_name] = verified
            if errors:
                result.record_failure(node_name, *errors)
            else:
                result.record_success(node_name)

        self._cleanup()
        return result

    def get_current_state(self, nodes: List[str]) -> Dict[str, List[VLANInterfaceInfo]]:
        """노드별 현재 VLAN 인터페이스 조회"""
        state = {}
        for node_name in nodes:
            executed = self.kubectl.exec_node_command(
                node_name, "ip -o -d link show type vlan; ip -o -4 addr show"
            )
            if executed.error is not None:
                raise KictlError(f"failed to discover VLANs on node {node_name}: {executed.error}")
            interfaces = parse_vlan_interfaces(executed.output)
            for info in interfaces:
                self.logger.info(f"Discovered VLAN interface on {node_name}: {info.interface} ({info.ip_address or 'no address'})")
            state[node_name] = interfaces
        self._cleanup()
        return state

    def _physical_interface(self, vlan_config: VLANConfig) -> str:
        return vlan_config.interface or self.options.default_interface or DEFAULT_INTERFACE

    def _process_vlans(self, conf: NodeVLANConf, operation: str) -> OperationResult:
        result = OperationResult()
        self.log_start(f"{operation.title()} VLANs", conf)

        for vlan_name, vlan_config in conf.vlans.items():
            self.logger.info(f"🔧 Processing VLAN: {vlan_name} (ID: {vlan_config.id}, Subnet: {vlan_config.subnet})")

            if not vlan_config.node_mapping:
                self.logger.warning(f"⚠️  VLAN {vlan_name} has no node mappings, skipping")
                continue

            for node_name, ip_address in vlan_config.node_mapping.items():
                result.total_targets += 1
                self.logger.info(f"  📍 Processing node: {node_name} -> {ip_address}")
                if self._process_node(node_name, vlan_name, vlan_config, ip_address, operation, result):
                    result.record_success(node_name)

        self.log_summary("VLAN Operation Summary", result, unit="node-VLAN assignment")
        self._cleanup()
        return result

    def _process_node(self, node_name: str, vlan_name: str, vlan_config: VLANConfig,
                      ip_address: str, operation: str, result: OperationResult) -> bool:
        if self.options.validate_connectivity and not self.validate_node(node_name, result):
            return False

        phys_interface = self._physical_interface(vlan_config)
        vlan_interface = f"{phys_interface}.{vlan_config.id}"

        try:
            ipaddress.ip_interface(ip_address)
        except ValueError:
            self.logger.error(f"Invalid IP address format for node {node_name}: {ip_address}")
            result.record_failure(node_name, ConfigError(f"invalid IP format: {ip_address}"))
            return False

        if operation == OP_REMOVE:
            error = self._remove_interface(node_name, vlan_name, vlan_interface)
            if error is None:
                self.logger.info(f"✅ Removed VLAN interface {vlan_interface} from node {node_name}")
        else:
            error = self._configure_interface(node_name, vlan_name, vlan_config, vlan_interface,
                                              phys_interface, ip_address)
            if error is None:
                self.logger.info(f"✅ Configured VLAN {vlan_name} ({vlan_interface}) on node {node_name}: {ip_address}")
                result.details.setdefault(node_name, []).append(VLANInterfaceInfo(
                    vlan_name=vlan_name,
                    vlan_id=vlan_config.id,
                    interface=vlan_interface,
                    ip_address=ip_address,
                    phys_interface=phys_interface,
                    subnet=vlan_config.subnet,
                ))

        if error is not None:
            self.logger.error(f"Failed to {operation} VLAN {vlan_name} on node {node_name}: {error}")
            result.record_failure(node_name, error)
            return False
        return True

    def _configure_interface(self, node_name: str, vlan_name: str, vlan_config: VLANConfig,
                             vlan_interface: str, phys_interface: str,
                             ip_address: str) -> Optional[KictlError]:
        # 파드 생성을 줄이기 위해 한 번에 실행
        commands = [
            f"(ip link show {vlan_interface} >/dev/null 2>&1 || "
            f"ip link add link {phys_interface} name {vlan_interface} type vlan id {vlan_config.id})",
            f"ip addr replace {ip_address} dev {vlan_interface}",
            f"ip link set {vlan_interface} up",
        ]

        if self.options.persistent_config:
            content = render_netplan(vlan_config, vlan_interface, phys_interface, ip_address)
            commands.append(f"printf '%s' {shlex.quote(content)} > {netplan_path(vlan_name)}")

        executed = self.kubectl.exec_node_command(node_name, " && ".join(commands))
        if not executed.success:
            return KictlError(f"VLAN configuration failed: {executed.error or executed.output}")

        if self.options.verbose:
            self.logger.info(f"    💻 Executed combined VLAN setup for {vlan_interface}")
        return None

    def _remove_interface(self, node_name: str, vlan_name: str,
                          vlan_interface: str) -> Optional[KictlError]:
        # 인터페이스가 없어도 실패하지 않도록 || true
        command = f"(ip link set {vlan_interface} down && ip link delete {vlan_interface}) || true"
        if self.options.persistent_config:
            command += f"; rm -f {netplan_path(vlan_name)}"

        executed = self.kubectl.exec_node_command(node_name, command)
        if executed.error is not None and not executed.success:
            return KictlError(f"failed to execute VLAN removal: {executed.error}")

        if self.options.verbose:
            self.logger.info(f"    💻 Executed combined VLAN removal for {vlan_interface}")
        return None

    def _verify_node(self, node_name: str, conf: NodeVLANConf):
        verified = []
        errors = []

        for vlan_name, vlan_config in conf.vlans.items():
            ip_address = vlan_config.node_mapping.get(node_name)
            if ip_address is None:
                continue

            phys_interface = self._physical_interface(vlan_config)
            vlan_interface = f"{phys_interface}.{vlan_config.id}"

            executed = self.kubectl.exec_node_command(node_name, f"ip addr show {vlan_interface}")
            if not executed.success:
                self.logger.warning(f"VLAN interface {vlan_interface} not found on node {node_name}")
                errors.append(KictlError(f"VLAN interface {vlan_interface} not found on node {node_name}"))
                continue

            expected_ip = ip_address.split("/")[0]
            if self.dry_run or re.search(r"inet6? " + re.escape(expected_ip) + r"(/|\s|$)", executed.output):
                self.logger.info(f"✅ Verified VLAN {vlan_name} ({vlan_interface}) on node {node_name}")
                verified.append(VLANInterfaceInfo(
                    vlan_name=vlan_name,
                    vlan_id=vlan_config.id,
                    interface=vlan_interface,
                    ip_address=ip_address,
                    phys_interface=phys_interface,
                    subnet=vlan_config.subnet,
                ))
            else:
                self.logger.warning(f"VLAN {vlan_name} on node {node_name} has incorrect IP configuration")
                errors.append(KictlError(
                    f"VLAN {vlan_name} on node {node_name} does not carry {expected_ip}"
                ))

        return verified, errors

    def _cleanup(self):
        cleanup_debug_pods(self.kubectl, self.logger, settle_delay=self.options.cleanup_delay)
