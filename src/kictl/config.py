"""
설정 관리 모듈
NodeLabelConf / NodeVLANConf / NodeTestConf YAML 문서 로드, 검증 및 기본값 제공
"""

import os
import yaml
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field

from .errors import ConfigError

API_VERSION = "openstack.kictl.icycloud.io/v1"
KIND_NODE_LABEL = "NodeLabelConf"
KIND_NODE_VLAN = "NodeVLANConf"
KIND_NODE_TEST = "NodeTestConf"
SUPPORTED_KINDS = (KIND_NODE_LABEL, KIND_NODE_VLAN, KIND_NODE_TEST)

DEFAULT_INTERFACE = "eth0"
DEFAULT_TEST_TIMEOUT = 30
LOG_LEVEL_NAMES = ("debug", "info", "warn", "warning", "error")
OUTPUT_FORMATS = ("summary", "detailed", "json")


def require_bool(key: str, value: Any) -> bool:
    """YAML 불리언 값 검사 ("false" 같은 문자열은 거부)"""
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false, got '{value}'")
    return value


@dataclass
class Metadata:
    """Kubernetes 스타일 메타데이터"""
    name: str = ""
    namespace: str = "default"
    labels: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Metadata":
        data = data or {}
        return cls(
            name=str(data.get("name") or ""),
            namespace=str(data.get("namespace") or "default"),
            labels={str(k): str(v) for k, v in (data.get("labels") or {}).items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "namespace": self.namespace}
        if self.labels:
            data["labels"] = dict(self.labels)
        return data


@dataclass
class ToolConfig:
    """도구별 설정"""
    # 공통
    dry_run: bool = False
    validate_nodes: bool = True
    log_level: str = "info"
    # VLAN
    validate_connectivity: bool = True
    persistent_config: bool = False
    default_interface: str = DEFAULT_INTERFACE
    # 연결성 테스트
    exclude_nodes: List[str] = field(default_factory=list)
    output_format: str = "summary"
    cleanup_after_tests: bool = True

    BOOL_KEYS = ("dryRun", "validateNodes", "validateConnectivity", "persistentConfig", "cleanupAfterTests")

    FIELD_KEYS = {
        "dryRun": "dry_run",
        "validateNodes": "validate_nodes",
        "logLevel": "log_level",
        "validateConnectivity": "validate_connectivity",
        "persistentConfig": "persistent_config",
        "defaultInterface": "default_interface",
        "excludeNodes": "exclude_nodes",
        "outputFormat": "output_format",
        "cleanupAfterTests": "cleanup_after_tests",
    }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ToolConfig":
        tool = cls()
        for key, value in (data or {}).items():
            attr = cls.FIELD_KEYS.get(key)
            if attr is None:
                raise ConfigError(f"unknown tool option '{key}'")
            if key in cls.BOOL_KEYS:
                value = require_bool(key, value)
            elif key == "excludeNodes" and not isinstance(value, list):
                raise ConfigError(f"'excludeNodes' must be a list of node names, got '{value}'")
            setattr(tool, attr, value)
        if str(tool.log_level).lower() not in LOG_LEVEL_NAMES:
            raise ConfigError(f"logLevel must be one of {', '.join(LOG_LEVEL_NAMES)}, got '{tool.log_level}'")
        if tool.output_format not in OUTPUT_FORMATS:
            raise ConfigError(f"outputFormat must be one of {', '.join(OUTPUT_FORMATS)}, got '{tool.output_format}'")
        tool.exclude_nodes = [str(n) for n in (tool.exclude_nodes or [])]
        return tool

    def to_dict(self) -> Dict[str, Any]:
        return {key: getattr(self, attr) for key, attr in self.FIELD_KEYS.items()}


@dataclass
class Tools:
    """도구별 설정 묶음"""
    nlabel: ToolConfig = field(default_factory=ToolConfig)
    nvlan: ToolConfig = field(default_factory=ToolConfig)
    ntest: ToolConfig = field(default_factory=ToolConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Tools":
        data = data or {}
        unknown = set(data) - {"nlabel", "nvlan", "ntest"}
        if unknown:
            raise ConfigError(f"unknown tools section(s): {', '.join(sorted(unknown))}")
        return cls(
            nlabel=ToolConfig.from_dict(data.get("nlabel")),
            nvlan=ToolConfig.from_dict(data.get("nvlan")),
            ntest=ToolConfig.from_dict(data.get("ntest")),
        )

    def all(self) -> List[ToolConfig]:
        return [self.nlabel, self.nvlan, self.ntest]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nlabel": self.nlabel.to_dict(),
            "nvlan": self.nvlan.to_dict(),
            "ntest": self.ntest.to_dict(),
        }


class BaseConf:
    """설정 문서 공통 동작

    CLI 우선순위 적용을 위해 재정의 가능한 항목의 setter 를 제공한다.
    """
    kind = ""
    tool_key = ""

    api_version: str
    metadata: Metadata
    tools: Tools

    @property
    def tool(self) -> ToolConfig:
        """이 문서 종류에 해당하는 도구 설정"""
        return getattr(self.tools, self.tool_key)

    def set_dry_run(self, value: bool):
        for tool in self.tools.all():
            tool.dry_run = bool(value)

    def set_log_level(self, value: str):
        for tool in self.tools.all():
            tool.log_level = str(value)

    def _validate_common(self):
        if not self.api_version.endswith("/v1"):
            raise ConfigError(f"config apiVersion must end with '/v1', got '{self.api_version}'")
        if not self.metadata.name:
            raise ConfigError("config metadata.name is required")

    def _header(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
        }


@dataclass
class NodeRole:
    """노드 역할별 레이블 설정"""
    nodes: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    description: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NodeRole":
        data = data or {}
        return cls(
            nodes=[str(n) for n in (data.get("nodes") or [])],
            labels={str(k): str(v) for k, v in (data.get("labels") or {}).items()},
            description=str(data.get("description") or ""),
        )

    def label_strings(self) -> List[str]:
        return [f"{key}={value}" for key, value in self.labels.items()]


@dataclass
class NodeLabelConf(BaseConf):
    """노드 레이블 설정 문서"""
    api_version: str = API_VERSION
    metadata: Metadata = field(default_factory=Metadata)
    node_roles: Dict[str, NodeRole] = field(default_factory=dict)
    tools: Tools = field(default_factory=Tools)

    kind = KIND_NODE_LABEL
    tool_key = "nlabel"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeLabelConf":
        spec = data.get("spec") or {}
        conf = cls(
            api_version=str(data.get("apiVersion") or ""),
            metadata=Metadata.from_dict(data.get("metadata")),
            node_roles={str(name): NodeRole.from_dict(role)
                        for name, role in (spec.get("nodeRoles") or {}).items()},
            tools=Tools.from_dict(data.get("tools")),
        )
        conf.validate()
        return conf

    def validate(self):
        self._validate_common()
        if not self.node_roles:
            raise ConfigError("config must contain at least one node role")
        for name, role in self.node_roles.items():
            if not role.nodes:
                raise ConfigError(f"node role '{name}' must list at least one node")
            if not role.labels:
                raise ConfigError(f"node role '{name}' must define at least one label")

    def node_count(self) -> int:
        return sum(len(role.nodes) for role in self.node_roles.values())

    def to_dict(self) -> Dict[str, Any]:
        data = self._header()
        data["spec"] = {
            "nodeRoles": {
                name: {"nodes": list(role.nodes), "labels": dict(role.labels),
                       "description": role.description}
                for name, role in self.node_roles.items()
            }
        }
        data["tools"] = {"nlabel": self.tools.nlabel.to_dict()}
        return data


@dataclass
class VLANConfig:
    """단일 VLAN 설정"""
    id: int = 0
    subnet: str = ""
    interface: str = DEFAULT_INTERFACE
    node_mapping: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Optional[Dict[str, Any]]) -> "VLANConfig":
        data = data or {}
        try:
            vlan_id = int(data.get("id") or 0)
        except (TypeError, ValueError):
            raise ConfigError(f"VLAN '{name}' id must be an integer, got '{data.get('id')}'")
        if not 1 <= vlan_id <= 4094:
            raise ConfigError(f"VLAN '{name}' id must be between 1 and 4094, got {vlan_id}")
        return cls(
            id=vlan_id,
            subnet=str(data.get("subnet") or ""),
            interface=str(data.get("interface") or DEFAULT_INTERFACE),
            node_mapping={str(k): str(v) for k, v in (data.get("nodeMapping") or {}).items()},
        )


@dataclass
class NodeVLANConf(BaseConf):
    """노드 VLAN 설정 문서"""
    api_version: str = API_VERSION
    metadata: Metadata = field(default_factory=Metadata)
    vlans: Dict[str, VLANConfig] = field(default_factory=dict)
    tools: Tools = field(default_factory=Tools)

    kind = KIND_NODE_VLAN
    tool_key = "nvlan"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeVLANConf":
        spec = data.get("spec") or {}
        conf = cls(
            api_version=str(data.get("apiVersion") or ""),
            metadata=Metadata.from_dict(data.get("metadata")),
            vlans={str(name): VLANConfig.from_dict(str(name), vlan)
                   for name, vlan in (spec.get("vlans") or {}).items()},
            tools=Tools.from_dict(data.get("tools")),
        )
        conf.validate()
        return conf

    def validate(self):
        self._validate_common()
        if not self.vlans:
            raise ConfigError("config must contain at least one VLAN")

    def all_nodes(self) -> List[str]:
        """모든 VLAN 에 걸친 노드 목록 (순서 유지, 중복 제거)"""
        nodes = []
        for vlan in self.vlans.values():
            for node_name in vlan.node_mapping:
                if node_name not in nodes:
                    nodes.append(node_name)
        return nodes

    def to_dict(self) -> Dict[str, Any]:
        data = self._header()
        data["spec"] = {
            "vlans": {
                name: {"id": vlan.id, "subnet": vlan.subnet, "interface": vlan.interface,
                       "nodeMapping": dict(vlan.node_mapping)}
                for name, vlan in self.vlans.items()
            }
        }
        data["tools"] = {"nvlan": self.tools.nvlan.to_dict()}
        return data


@dataclass
class ConnectivityTest:
    """단일 연결성 테스트"""
    name: str = ""
    source: str = ""
    targets: List[str] = field(default_factory=list)
    description: str = ""
    timeout: int = DEFAULT_TEST_TIMEOUT
    expect_success: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ConnectivityTest":
        data = data or {}
        name = str(data.get("name") or "")

        raw_timeout = data.get("timeout")
        try:
            timeout = DEFAULT_TEST_TIMEOUT if raw_timeout is None else int(raw_timeout)
        except (TypeError, ValueError):
            raise ConfigError(f"test '{name}' timeout must be an integer number of seconds, got '{raw_timeout}'")
        if timeout <= 0:
            raise ConfigError(f"test '{name}' timeout must be positive, got {timeout}")

        expect_success = data.get("expectSuccess")
        # 키가 없을 때만 기본값 true
        expect_success = True if expect_success is None else require_bool("expectSuccess", expect_success)

        test = cls(
            name=name,
            source=str(data.get("source") or ""),
            targets=[str(t) for t in (data.get("targets") or [])],
            description=str(data.get("description") or ""),
            timeout=timeout,
            expect_success=expect_success,
        )
        if not test.name:
            raise ConfigError("every test must have a name")
        if not test.source:
            raise ConfigError(f"test '{test.name}' must have a source network")
        if not test.targets:
            raise ConfigError(f"test '{test.name}' must have at least one target network")
        return test


@dataclass
class NodeTestConf(BaseConf):
    """연결성 테스트 설정 문서"""
    api_version: str = API_VERSION
    metadata: Metadata = field(default_factory=Metadata)
    tests: List[ConnectivityTest] = field(default_factory=list)
    tools: Tools = field(default_factory=Tools)

    kind = KIND_NODE_TEST
    tool_key = "ntest"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeTestConf":
        spec = data.get("spec") or {}
        conf = cls(
            api_version=str(data.get("apiVersion") or ""),
            metadata=Metadata.from_dict(data.get("metadata")),
            tests=[ConnectivityTest.from_dict(t) for t in (spec.get("tests") or [])],
            tools=Tools.from_dict(data.get("tools")),
        )
        conf.validate()
        return conf

    def validate(self):
        self._validate_common()
        if not self.tests:
            raise ConfigError("config must contain at least one test")

    def to_dict(self) -> Dict[str, Any]:
        data = self._header()
        data["spec"] = {
            "tests": [
                {"name": t.name, "description": t.description, "source": t.source,
                 "targets": list(t.targets), "timeout": t.timeout,
                 "expectSuccess": t.expect_success}
                for t in self.tests
            ]
        }
        data["tools"] = {"ntest": self.tools.ntest.to_dict()}
        return data


CONF_CLASSES = {
    KIND_NODE_LABEL: NodeLabelConf,
    KIND_NODE_VLAN: NodeVLANConf,
    KIND_NODE_TEST: NodeTestConf,
}


@dataclass
class ConfigBundle:
    """하나의 매니페스트에 담긴 설정 문서 묶음"""
    node_labels: Optional[NodeLabelConf] = None
    vlans: Optional[NodeVLANConf] = None
    tests: Optional[NodeTestConf] = None
    source: str = ""

    def configs(self) -> List[BaseConf]:
        """비어 있지 않은 설정 목록"""
        return [c for c in (self.node_labels, self.vlans, self.tests) if c is not None]

    def has_node_labels(self) -> bool:
        return self.node_labels is not None

    def has_vlans(self) -> bool:
        return self.vlans is not None

    def has_tests(self) -> bool:
        return self.tests is not None

    def add(self, conf: BaseConf, index: int = 1):
        attr = {KIND_NODE_LABEL: "node_labels", KIND_NODE_VLAN: "vlans", KIND_NODE_TEST: "tests"}[conf.kind]
        if getattr(self, attr) is not None:
            raise ConfigError(f"duplicate {conf.kind} in document {index}")
        setattr(self, attr, conf)

    def summary(self) -> str:
        """번들 내용 요약"""
        parts = []
        if self.node_labels:
            parts.append(f"NodeLabels({len(self.node_labels.node_roles)} roles, "
                         f"{self.node_labels.node_count()} nodes)")
        if self.vlans:
            parts.append(f"VLANs({len(self.vlans.vlans)} vlans)")
        if self.tests:
            parts.append(f"Tests({len(self.tests.tests)} tests)")
        return ", ".join(parts) if parts else "Empty bundle"


def parse_document(data: Any, index: int = 1) -> BaseConf:
    """YAML 문서 하나를 설정 객체로 변환"""
    if not isinstance(data, dict):
        raise ConfigError(f"document {index} is not a mapping")

    kind = data.get("kind")
    conf_class = CONF_CLASSES.get(kind)
    if conf_class is None:
        raise ConfigError(
            f"unsupported config kind '{kind or ''}' in document {index}. "
            f"Expected: {', '.join(SUPPORTED_KINDS)}"
        )
    try:
        return conf_class.from_dict(data)
    except ConfigError as e:
        raise ConfigError(f"failed to load {kind} in document {index}: {e}") from e


def load_bundle_from_string(content: str, source: str = "") -> ConfigBundle:
    """단일/멀티 문서 YAML 문자열 로드"""
    try:
        documents = [doc for doc in yaml.safe_load_all(content) if doc is not None]
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config: invalid YAML: {e}") from e

    if not documents:
        raise ConfigError("no valid YAML documents found")

    bundle = ConfigBundle(source=source)
    for index, doc in enumerate(documents, start=1):
        bundle.add(parse_document(doc, index), index)
    return bundle


def load_bundle(path: str) -> ConfigBundle:
    """설정 파일 로드"""
    if not path:
        raise ConfigError("configuration file is required")

    path = os.path.expanduser(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e

    return load_bundle_from_string(content, source=path)


def default_node_label_conf() -> NodeLabelConf:
    """기본 노드 레이블 설정"""
    return NodeLabelConf(
        metadata=Metadata(
            name="production-node-labels",
            namespace="openstack",
            labels={"environment": "production", "region": "datacenter"},
        ),
        node_roles={
            "controlPlane": NodeRole(
                nodes=["server-01", "server-02", "server-03"],
                labels={
                    "openstack-control-plane": "enabled",
                    "openstack-role": "control-plane",
                    "cluster.openstack.io/role": "control-plane",
                },
                description="OpenStack control plane services (Nova API, Keystone, etc.)",
            ),
            "storage": NodeRole(
                nodes=["server-04", "server-05"],
                labels={
                    "openstack-storage-node": "enabled",
                    "openstack-role": "storage",
                    "ceph-node": "enabled",
                    "cluster.openstack.io/role": "storage",
                },
                description="Dedicated storage nodes for Ceph cluster",
            ),
            "compute": NodeRole(
                nodes=["server-06", "server-07"],
                labels={
                    "openstack-compute-node": "enabled",
                    "openstack-role": "compute",
                    "nova-compute": "enabled",
                    "cluster.openstack.io/role": "compute",
                },
                description="Compute nodes for VM workloads and nested Kubernetes",
            ),
        },
    )


def default_node_vlan_conf() -> NodeVLANConf:
    """기본 VLAN 설정"""
    return NodeVLANConf(
        metadata=Metadata(
            name="production-vlans",
            namespace="openstack",
            labels={"environment": "production", "region": "datacenter"},
        ),
        vlans={
            "management": VLANConfig(
                id=100,
                subnet="10.1.100.0/24",
                interface="eth0",
                node_mapping={
                    "server-01": "10.1.100.11/24",
                    "server-02": "10.1.100.12/24",
                    "server-03": "10.1.100.13/24",
                },
            ),
            "storage": VLANConfig(
                id=200,
                subnet="10.1.200.0/24",
                interface="eth1",
                node_mapping={
                    "server-04": "10.1.200.14/24",
                    "server-05": "10.1.200.15/24",
                },
            ),
        },
    )


def default_node_test_conf() -> NodeTestConf:
    """기본 연결성 테스트 설정"""
    return NodeTestConf(
        metadata=Metadata(
            name="production-tests",
            namespace="openstack",
            labels={"environment": "production", "region": "datacenter"},
        ),
        tests=[
            ConnectivityTest(
                name="management-reachability",
                description="Test management network connectivity",
                source="management",
                targets=["storage"],
                expect_success=True,
            ),
            ConnectivityTest(
                name="tenant-isolation",
                description="Verify tenant network cannot reach management",
                source="tenant",
                targets=["management"],
                expect_success=False,
            ),
        ],
    )


def _write_documents(path: str, documents: List[Dict[str, Any]]):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(path, 'w', encoding='utf-8') as f:
        yaml.safe_dump_all(documents, f, default_flow_style=False, sort_keys=False,
                           allow_unicode=True)


def generate_sample_config(path: str):
    """샘플 노드 레이블 설정 파일 생성"""
    _write_documents(path, [default_node_label_conf().to_dict()])


def generate_multi_sample_config(path: str):
    """샘플 멀티 문서 설정 파일 생성 (레이블, VLAN, 테스트)"""
    _write_documents(path, [
        default_node_label_conf().to_dict(),
        default_node_vlan_conf().to_dict(),
        default_node_test_conf().to_dict(),
    ])
