"""
노드 레이블 서비스 테스트
"""

import pytest

from kictl.config import Metadata, NodeLabelConf, NodeRole
from kictl.errors import KictlError, NodeNotFoundError
from kictl.labeler import LabelerOptions, LabelingService

from conftest import node_labels_output

CONTROL_PLANE_LABELS = {
    "openstack-control-plane": "enabled",
    "openstack-role": "control-plane",
}


def label_conf(*nodes, labels=None):
    return NodeLabelConf(
        metadata=Metadata(name="test-labels"),
        node_roles={
            "controlPlane": NodeRole(nodes=list(nodes), labels=dict(labels or CONTROL_PLANE_LABELS)),
        },
    )


def test_apply_labels_existing_node(runner, make_executor):
    """존재하는 노드에 레이블 적용"""
    runner.on("get", "node", "rsb2", output="rsb2   Ready")
    runner.on("label", "node", "rsb2", output="node/rsb2 labeled")
    service = LabelingService(make_executor())

    result = service.apply_labels(label_conf("rsb2"))

    assert result.total_targets == 1
    assert result.successful_targets == 1
    assert result.failed_targets == []
    assert result.ok == True
    assert result.details["rsb2"] == ["openstack-control-plane=enabled", "openstack-role=control-plane"]
    assert ["label", "node", "rsb2", "openstack-role=control-plane", "--overwrite"] in runner.calls


def test_apply_labels_missing_node(runner, make_executor):
    """없는 노드는 레이블 시도 없이 실패"""
    runner.on("get", "node", "rsb2", output="rsb2   Ready")
    runner.on("label", "node", "rsb2", output="node/rsb2 labeled")
    service = LabelingService(make_executor())

    result = service.apply_labels(label_conf("rsb2", "ghost"))

    assert result.total_targets == 2
    assert result.successful_targets == 1
    assert result.failed_targets == ["ghost"]
    assert len(result.errors) == 1
    assert isinstance(result.errors[0], NodeNotFoundError)
    assert runner.commands("label", "node", "ghost") == []
    assert "ghost" in result.summary()


def test_apply_labels_partial_failure(runner, make_executor):
    """일부 레이블 실패 시 노드 실패, 성공한 레이블은 기록"""
    runner.on("get", "node", "rsb3", output="rsb3   Ready")
    runner.on("label", "node", "rsb3", output="node/rsb3 labeled")
    runner.on("label", "node", "rsb3", "openstack-role=control-plane", success=False,
              output="error: invalid label value")
    service = LabelingService(make_executor())

    result = service.apply_labels(label_conf("rsb3"))

    assert result.successful_targets == 0
    assert result.failed_targets == ["rsb3"]
    assert len(result.errors) == 1
    assert result.details["rsb3"] == ["openstack-control-plane=enabled"]


def test_apply_labels_without_validation(runner, make_executor):
    """validateNodes 가 false 면 노드 조회 생략"""
    runner.on("label", "node", "rsb4", output="node/rsb4 labeled")
    service = LabelingService(make_executor(), LabelerOptions(validate_nodes=False))

    result = service.apply_labels(label_conf("rsb4"))

    assert result.ok == True
    assert runner.commands("get", "node") == []


def test_apply_labels_dry_run(runner, make_executor):
    """dry-run 은 노드 검증만 실제 실행"""
    runner.on("get", "node", "rsb2", output="rsb2   Ready")
    service = LabelingService(make_executor(dry_run=True))

    result = service.apply_labels(label_conf("rsb2"))

    assert result.ok == True
    assert result.successful_targets == 1
    assert runner.commands("label") == []
    assert runner.commands("get", "node", "rsb2") == [["get", "node", "rsb2"]]


def test_remove_labels_is_idempotent(runner, make_executor):
    """이미 제거된 레이블 제거도 성공"""
    runner.on("get", "node", "rsb2", output="rsb2   Ready")
    runner.on("label", "node", "rsb2", success=False, output='label "openstack-role" not found.')
    runner.on("label", "node", "rsb2", "openstack-control-plane-", success=False,
              output='label "openstack-control-plane" not found.')
    service = LabelingService(make_executor())

    result = service.remove_labels(label_conf("rsb2"))

    assert result.ok == True
    assert result.details["rsb2"] == ["-openstack-control-plane", "-openstack-role"]


def test_verify_labels(runner, make_executor):
    """적용된 레이블 검증"""
    runner.on("get", "node", "rsb2", "--show-labels",
              output=node_labels_output("rsb2", CONTROL_PLANE_LABELS))
    runner.on("get", "node", "rsb3", "--show-labels",
              output=node_labels_output("rsb3", {"openstack-role": "control-plane"}))
    service = LabelingService(make_executor())

    result = service.verify_labels(label_conf("rsb2", "rsb3"))

    assert result.successful_targets == 1
    assert result.failed_targets == ["rsb3"]
    assert result.details["rsb3"] == ["openstack-role=control-plane"]


def test_get_current_state(runner, make_executor):
    """노드별 현재 레이블 조회"""
    runner.on("get", "node", "rsb2", "--show-labels",
              output=node_labels_output("rsb2", CONTROL_PLANE_LABELS))
    service = LabelingService(make_executor())

    state = service.get_current_state(["rsb2"])
    assert state == {"rsb2": CONTROL_PLANE_LABELS}

    with pytest.raises(KictlError):
        service.get_current_state(["ghost"])


@pytest.mark.parametrize("verbose, level", [(True, "INFO"), (False, "DEBUG")])
def test_label_detail_logging_follows_verbose(runner, make_executor, test_logger, verbose, level):
    """레이블별 상세 로그는 verbose 일 때 INFO, 아니면 DEBUG"""
    runner.on("get", "node", "rsb2", output="rsb2   Ready")
    runner.on("label", "node", "rsb2", output="node/rsb2 labeled")
    service = LabelingService(make_executor(), LabelerOptions(verbose=verbose))

    service.apply_labels(label_conf("rsb2", labels={"openstack-role": "control-plane"}))

    with open(test_logger.get_log_files()["main_log"], encoding='utf-8') as f:
        content = f.read()
    assert f"{level} - ✅ Applied label openstack-role=control-plane to node rsb2" in content
