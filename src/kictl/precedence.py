"""
CLI 우선순위 적용 모듈
CLI 플래그 > 설정 파일 > 기본값
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import ConfigBundle


@dataclass(frozen=True)
class CliOverrides:
    """명령줄에서 명시적으로 지정된 값 (미지정은 None)"""
    dry_run: Optional[bool] = None
    log_level: Optional[str] = None


class GlobalResolver:
    """번들의 모든 설정 문서에 CLI 플래그 적용"""

    def __init__(self, overrides: CliOverrides):
        self.overrides = overrides

    def apply(self, bundle: ConfigBundle) -> ConfigBundle:
        for conf in bundle.configs():
            if self.overrides.dry_run is not None:
                conf.set_dry_run(self.overrides.dry_run)
            if self.overrides.log_level is not None:
                conf.set_log_level(self.overrides.log_level)
        return bundle

    def applied_overrides(self) -> Dict[str, Any]:
        """적용된 플래그 요약"""
        applied = {}
        if self.overrides.dry_run is not None:
            applied["dry-run"] = self.overrides.dry_run
        if self.overrides.log_level is not None:
            applied["log-level"] = self.overrides.log_level
        return applied
