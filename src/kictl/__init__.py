"""
kictl
YAML로 선언된 베어메탈 Kubernetes 노드 상태(역할 레이블, VLAN 인터페이스,
네트워크 간 연결성 테스트)를 kubectl을 통해 조정하는 도구

Features:
- NodeLabelConf / NodeVLANConf / NodeTestConf 멀티 문서 YAML 지원
- kubectl debug 기반 노드 원격 명령 실행
- 일관된 dry-run 시뮬레이션
- 노드별 독립 조정 및 결과 리포트
- 디버그 파드 자동 정리
"""

__version__ = "1.0.0"
__author__ = "DevOps Team"
