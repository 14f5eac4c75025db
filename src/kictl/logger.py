"""
로깅 시스템
파일 및 콘솔 로깅, verbose 모드 지원
"""

import logging
import os
from datetime import datetime
from typing import Optional
from rich.logging import RichHandler
from rich.console import Console

console = Console()

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_level(log_level: str) -> int:
    """문자열 로그 레벨을 logging 상수로 변환"""
    level = LOG_LEVELS.get(str(log_level).lower())
    if level is None:
        raise ValueError(f"unknown log level: {log_level}")
    return level


class KictlLogger:
    """kictl 로거"""

    def __init__(self, log_dir: Optional[str] = "logs", log_level: str = "info", verbose: bool = False):
        self.log_dir = log_dir
        self.log_level = logging.DEBUG if verbose else parse_level(log_level)
        self.verbose = verbose
        self.log_file = None
        self.error_file = None

        self.logger = logging.getLogger("kictl")
        # 파일에는 항상 DEBUG까지 기록
        self.logger.setLevel(logging.DEBUG if log_dir else self.log_level)

        # 기존 핸들러 제거
        self.logger.handlers.clear()

        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.log_file = os.path.join(log_dir, f"kictl_{timestamp}.log")
            self.error_file = os.path.join(log_dir, f"kictl_error_{timestamp}.log")

            # 파일 핸들러
            file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

            # 에러 파일 핸들러
            error_handler = logging.FileHandler(self.error_file, encoding='utf-8')
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(file_formatter)
            self.logger.addHandler(error_handler)

        # 콘솔 핸들러 (Rich)
        console_handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_time=False,
            show_path=verbose
        )
        console_handler.setLevel(self.log_level)
        self.logger.addHandler(console_handler)

    def debug(self, message: str):
        """디버그 로그"""
        self.logger.debug(message)

    def info(self, message: str):
        """정보 로그"""
        self.logger.info(message)

    def warning(self, message: str):
        """경고 로그"""
        self.logger.warning(message)

    def error(self, message: str):
        """에러 로그"""
        self.logger.error(message)

    def critical(self, message: str):
        """치명적 에러 로그"""
        self.logger.critical(message)

    def exception(self, message: str):
        """예외 로그 (트레이스백 포함)"""
        self.logger.exception(message)

    def get_log_files(self) -> dict:
        """로그 파일 경로 반환"""
        return {
            "main_log": self.log_file,
            "error_log": self.error_file,
            "log_dir": self.log_dir
        }


# 글로벌 로거 인스턴스
_logger: Optional[KictlLogger] = None


def get_logger(log_dir: Optional[str] = None,
               log_level: str = "info",
               verbose: bool = False) -> KictlLogger:
    """로거 인스턴스 가져오기"""
    global _logger
    if _logger is None:
        _logger = KictlLogger(log_dir, log_level, verbose)
    return _logger


def init_logger(log_dir: Optional[str], log_level: str, verbose: bool) -> KictlLogger:
    """로거 초기화"""
    global _logger
    _logger = KictlLogger(log_dir, log_level, verbose)
    return _logger
