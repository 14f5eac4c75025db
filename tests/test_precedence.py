"""
CLI 우선순위 적용 테스트
"""

from kictl.config import default_node_label_conf, default_node_test_conf, ConfigBundle
from kictl.precedence import CliOverrides, GlobalResolver


def bundle_with_dry_run(value):
    bundle = ConfigBundle(node_labels=default_node_label_conf(), tests=default_node_test_conf())
    for conf in bundle.configs():
        conf.set_dry_run(value)
        conf.set_log_level("warn")
    return bundle


def test_no_overrides_keeps_config():
    """플래그가 없으면 설정 파일 값 유지"""
    bundle = GlobalResolver(CliOverrides()).apply(bundle_with_dry_run(True))

    assert bundle.node_labels.tool.dry_run == True
    assert bundle.tests.tool.log_level == "warn"


def test_cli_overrides_every_document():
    """명시적 플래그는 모든 문서에 적용"""
    resolver = GlobalResolver(CliOverrides(dry_run=False, log_level="debug"))
    bundle = resolver.apply(bundle_with_dry_run(True))

    for conf in bundle.configs():
        for tool in conf.tools.all():
            assert tool.dry_run == False
            assert tool.log_level == "debug"
    assert resolver.applied_overrides() == {"dry-run": False, "log-level": "debug"}


def test_partial_override():
    """일부 플래그만 적용"""
    resolver = GlobalResolver(CliOverrides(dry_run=True))
    bundle = resolver.apply(bundle_with_dry_run(False))

    assert bundle.node_labels.tool.dry_run == True
    assert bundle.node_labels.tool.log_level == "warn"
    assert resolver.applied_overrides() == {"dry-run": True}
