"""
CLI 메인 인터페이스
Click 및 Rich 기반 노드 설정 조정 CLI
"""

import json
import sys
import click
from click.core import ParameterSource
from typing import Callable, List, Optional
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .cleanup import DEFAULT_SETTLE_DELAY, cleanup_debug_pods
from .config import (
    BaseConf,
    ConfigBundle,
    generate_multi_sample_config,
    generate_sample_config,
    load_bundle,
)
from .errors import ConfigError, KictlError, PassAbortedError
from .kubectl import ExecutorOptions, KubectlExecutor, KubectlRunner
from .labeler import LabelerOptions, LabelingService
from .logger import get_logger, init_logger
from .nethealth import NetHealthCheckService, NetHealthOptions, TestResults
from .precedence import CliOverrides, GlobalResolver
from .reconcile import OperationResult
from .vlan import VLANOptions, VLANService

console = Console()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

# 패스 종료 후 디버그 파드 정리 전 대기 시간
CLEANUP_SETTLE_DELAY = DEFAULT_SETTLE_DELAY


class ReconcileOrchestrator:
    """설정 번들의 도메인별 조정 패스 실행"""

    def __init__(self, bundle: ConfigBundle, runner: Optional[KubectlRunner] = None,
                 verbose: bool = False):
        self.bundle = bundle
        self.runner = runner
        self.verbose = verbose
        self.logger = get_logger()
        self.execution_log = []
        self.aborted = False

    def executor_for(self, conf: BaseConf) -> KubectlExecutor:
        """문서별 dry-run 설정으로 executor 생성"""
        return KubectlExecutor(ExecutorOptions.from_env(dry_run=conf.tool.dry_run), runner=self.runner)

    def labeling_service(self) -> LabelingService:
        conf = self.bundle.node_labels
        return LabelingService(
            self.executor_for(conf),
            LabelerOptions(validate_nodes=conf.tool.validate_nodes, verbose=self.verbose),
        )

    def vlan_service(self) -> VLANService:
        conf = self.bundle.vlans
        tool = conf.tool
        return VLANService(
            self.executor_for(conf),
            VLANOptions(
                validate_connectivity=tool.validate_connectivity,
                persistent_config=tool.persistent_config,
                default_interface=tool.default_interface,
                verbose=self.verbose,
                cleanup_delay=CLEANUP_SETTLE_DELAY,
            ),
        )

    def nethealth_service(self) -> NetHealthCheckService:
        conf = self.bundle.tests
        tool = conf.tool
        return NetHealthCheckService(
            self.executor_for(conf),
            NetHealthOptions(
                exclude_nodes=tuple(tool.exclude_nodes),
                cleanup_after_tests=tool.cleanup_after_tests,
                output_format=tool.output_format,
                cleanup_delay=CLEANUP_SETTLE_DELAY,
                verbose=self.verbose,
            ),
            vlan_config=self.bundle.vlans,
        )

    def log_step(self, domain: str, operation: str, result: OperationResult, aborted: bool = False):
        """실행 단계 기록"""
        self.execution_log.append({
            "domain": domain,
            "operation": operation,
            "result": result,
            "aborted": aborted,
        })

    def run_step(self, domain: str, operation: str,
                 action: Callable[[], OperationResult]) -> OperationResult:
        """단계 실행. 중단된 패스는 부분 결과로 기록"""
        try:
            result = action()
        except PassAbortedError as e:
            self.logger.error(f"{domain} {operation} aborted: {e}")
            self.aborted = True
            result = e.result if e.result is not None else OperationResult()
            self.log_step(domain, operation, result, aborted=True)
            return result

        self.log_step(domain, operation, result)
        return result

    def apply(self):
        """레이블 적용(+검증), VLAN 설정, 연결성 테스트"""
        if self.bundle.has_node_labels():
            service = self.labeling_service()
            conf = self.bundle.node_labels
            self.run_step("labels", "apply", lambda: service.apply_labels(conf))
            if not service.dry_run:
                self.run_step("labels", "verify", lambda: service.verify_labels(conf))

        if self.bundle.has_vlans():
            service = self.vlan_service()
            conf = self.bundle.vlans
            self.run_step("vlans", "configure", lambda: service.configure_vlans(conf))

        if self.bundle.has_tests():
            service = self.nethealth_service()
            conf = self.bundle.tests
            self.run_step("tests", "run", lambda: service.run_tests(conf))

    def delete(self):
        """레이블 제거, VLAN 제거, 테스트 파드 정리"""
        if self.bundle.has_node_labels():
            service = self.labeling_service()
            conf = self.bundle.node_labels
            self.run_step("labels", "remove", lambda: service.remove_labels(conf))

        if self.bundle.has_vlans():
            service = self.vlan_service()
            conf = self.bundle.vlans
            self.run_step("vlans", "remove", lambda: service.remove_vlans(conf))

        if self.bundle.has_tests():
            service = self.nethealth_service()
            conf = self.bundle.tests
            self.run_step("tests", "stop", lambda: service.stop_tests(conf))

    def verify(self):
        """레이블, VLAN, 연결성 검증"""
        if self.bundle.has_node_labels():
            service = self.labeling_service()
            conf = self.bundle.node_labels
            self.run_step("labels", "verify", lambda: service.verify_labels(conf))

        if self.bundle.has_vlans():
            service = self.vlan_service()
            conf = self.bundle.vlans
            self.run_step("vlans", "verify", lambda: service.verify_vlans(conf))

        if self.bundle.has_tests():
            service = self.nethealth_service()
            conf = self.bundle.tests
            self.run_step("tests", "verify", lambda: service.verify_tests(conf))

    def succeeded(self) -> bool:
        if self.aborted:
            return False
        return all(step["result"].ok for step in self.execution_log)

    def cleanup_after_interrupt(self):
        """중단 시 남은 디버그 파드 정리 (best effort)"""
        configs = self.bundle.configs()
        if not configs or any(conf.tool.dry_run for conf in configs):
            return
        self.logger.info("Cleaning up debug pods after interrupt...")
        cleanup_debug_pods(self.executor_for(configs[0]), self.logger, settle_delay=0)

    def run(self, operation: str) -> int:
        """작업 실행 후 종료 코드 반환"""
        actions = {"apply": self.apply, "delete": self.delete, "verify": self.verify}

        self.logger.info(f"=== kictl {operation} started ({self.bundle.summary()}) ===")
        try:
            actions[operation]()
        except KeyboardInterrupt:
            console.print("\n[yellow]사용자에 의해 중단되었습니다.[/yellow]")
            self.logger.warning("Execution interrupted by user")
            self.cleanup_after_interrupt()
            return EXIT_INTERRUPTED
        except KictlError as e:
            console.print(f"\n[red]예상치 못한 오류 발생: {e}[/red]")
            self.logger.exception("Unexpected error occurred")
            return EXIT_FAILURE

        self.show_summary()
        if self.succeeded():
            self.logger.info(f"=== kictl {operation} completed successfully ===")
            return EXIT_OK
        self.logger.error(f"=== kictl {operation} completed with errors ===")
        return EXIT_FAILURE

    def show_summary(self):
        """실행 결과 요약 표시"""
        console.print("\n" + "=" * 60)
        console.print("[bold]실행 결과 요약[/bold]")
        console.print("=" * 60 + "\n")

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("도메인", style="cyan")
        table.add_column("작업")
        table.add_column("대상", justify="right")
        table.add_column("성공", justify="right")
        table.add_column("실패", justify="right")
        table.add_column("상태")

        for step in self.execution_log:
            result = step["result"]
            if step["aborted"]:
                status = "[red]✗ 중단[/red]"
            elif result.ok:
                status = "[green]✓[/green]"
            else:
                status = "[red]✗[/red]"
            table.add_row(
                step["domain"],
                step["operation"],
                str(result.total_targets),
                str(result.successful_targets),
                str(len(result.failed_targets)),
                status,
            )

        console.print(table)

        for step in self.execution_log:
            result = step["result"]
            if isinstance(result, TestResults):
                self.show_test_results(result)
            for error in result.errors:
                console.print(f"  [red]• {step['domain']} {step['operation']}: {error}[/red]")

        log_files = self.logger.get_log_files()
        if log_files["main_log"]:
            console.print(f"\n[bold]로그 파일:[/bold]")
            console.print(f"  Main: {log_files['main_log']}")
            console.print(f"  Error: {log_files['error_log']}")

    def show_test_results(self, result: TestResults):
        """outputFormat 에 따라 연결성 테스트 결과 출력"""
        output_format = self.bundle.tests.tool.output_format if self.bundle.tests else "summary"

        if output_format == "json":
            console.print_json(json.dumps(result.to_dict()))
            return

        if output_format != "detailed":
            console.print(f"\n[bold]연결성 테스트:[/bold] {result.summary()}")
            return

        table = Table(title="연결성 테스트 상세 결과")
        table.add_column("테스트", style="cyan")
        table.add_column("출발", style="white")
        table.add_column("대상 네트워크", style="white")
        table.add_column("기대", justify="center")
        table.add_column("실제", justify="center")
        table.add_column("결과", justify="center")

        for execution in result.executions:
            table.add_row(
                execution.test_name,
                f"{execution.source_network} ({execution.source_node})",
                execution.target_network,
                "도달" if execution.expect_success else "격리",
                "도달" if execution.actual_success else "격리",
                "[green]✓[/green]" if execution.passed else "[red]✗[/red]",
            )
        console.print(table)


def explicit_overrides(ctx: click.Context, dry_run: bool, log_level: str) -> CliOverrides:
    """명령줄에서 직접 지정한 플래그만 재정의로 사용"""
    def given(name: str) -> bool:
        return ctx.get_parameter_source(name) == ParameterSource.COMMANDLINE

    return CliOverrides(
        dry_run=dry_run if given("dry_run") else None,
        log_level=log_level if given("log_level") else None,
    )


def prepare(ctx: click.Context, config_path: str, dry_run: bool, log_level: str,
            verbose: bool, log_dir: str) -> ConfigBundle:
    """설정 로드, CLI 우선순위 적용, 로거 초기화"""
    try:
        bundle = load_bundle(config_path)
    except ConfigError as e:
        console.print(f"[red]✗ 설정 파일 오류: {e}[/red]")
        sys.exit(EXIT_FAILURE)

    resolver = GlobalResolver(explicit_overrides(ctx, dry_run, log_level))
    resolver.apply(bundle)

    # 로그 레벨: CLI > 첫 번째 문서 > 기본값
    configs = bundle.configs()
    effective_level = configs[0].tool.log_level if configs else log_level
    logger = init_logger(log_dir or None, effective_level, verbose)

    for key, value in resolver.applied_overrides().items():
        logger.info(f"CLI override applied: --{key}={value}")
    logger.debug(f"Loaded configuration {bundle.source}: {bundle.summary()}")
    return bundle


def reconcile_options(func):
    """apply/delete/verify 공통 옵션"""
    options = [
        click.option("-c", "--config", "config_path", type=click.Path(exists=True),
                     required=True, help="설정 파일 경로"),
        click.option("--dry-run/--no-dry-run", default=False,
                     help="실제 변경 없이 시뮬레이션 (설정 파일보다 우선)"),
        click.option("--log-level", type=click.Choice(["debug", "info", "warn", "error"]),
                     default="info", help="로그 레벨 (설정 파일보다 우선)"),
        click.option("-v", "--verbose", is_flag=True, help="상세 디버그 출력"),
        click.option("--log-dir", default="logs", help="로그 디렉토리 (빈 값이면 파일 로그 비활성화)"),
        click.option("--kubeconfig", default=None, help="kubeconfig 파일 경로"),
        click.option("--context", "kube_context", default=None, help="kubeconfig 컨텍스트"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def run_operation(ctx: click.Context, operation: str, config_path: str, dry_run: bool,
                  log_level: str, verbose: bool, log_dir: str, kubeconfig: Optional[str],
                  kube_context: Optional[str]):
    bundle = prepare(ctx, config_path, dry_run, log_level, verbose, log_dir)

    if any(conf.tool.dry_run for conf in bundle.configs()):
        console.print("[yellow]🧪 DRY RUN 모드: 클러스터에 변경 사항을 적용하지 않습니다.[/yellow]")

    runner = KubectlRunner(kubeconfig=kubeconfig, context=kube_context)
    orchestrator = ReconcileOrchestrator(bundle, runner=runner, verbose=verbose)
    sys.exit(orchestrator.run(operation))


@click.group()
@click.version_option(version=__version__)
def cli():
    """kictl - Kubernetes 노드 설정 조정 도구

    노드 레이블, VLAN 인터페이스, 네트워크 연결성을 YAML 설정에 맞춰 조정합니다.
    """
    pass


@cli.command()
@reconcile_options
@click.pass_context
def apply(ctx, config_path, dry_run, log_level, verbose, log_dir, kubeconfig, kube_context):
    """설정 적용 (레이블, VLAN, 연결성 테스트)"""
    console.print(Panel.fit(
        "[bold cyan]kictl apply[/bold cyan]\n"
        "설정 파일의 원하는 상태를 클러스터 노드에 적용합니다.",
        border_style="cyan"
    ))
    run_operation(ctx, "apply", config_path, dry_run, log_level, verbose, log_dir,
                  kubeconfig, kube_context)


@cli.command()
@reconcile_options
@click.pass_context
def delete(ctx, config_path, dry_run, log_level, verbose, log_dir, kubeconfig, kube_context):
    """설정 제거 (레이블 제거, VLAN 삭제, 테스트 파드 정리)"""
    run_operation(ctx, "delete", config_path, dry_run, log_level, verbose, log_dir,
                  kubeconfig, kube_context)


@cli.command()
@reconcile_options
@click.pass_context
def verify(ctx, config_path, dry_run, log_level, verbose, log_dir, kubeconfig, kube_context):
    """현재 클러스터 상태를 설정과 비교"""
    run_operation(ctx, "verify", config_path, dry_run, log_level, verbose, log_dir,
                  kubeconfig, kube_context)


@cli.command()
@click.option("-c", "--config", "config_path", type=click.Path(exists=True),
              required=True, help="설정 파일 경로")
@click.option("--network", "networks", multiple=True,
              help="상태를 조회할 네트워크 (기본값: VLAN 설정의 모든 네트워크)")
@click.option("-v", "--verbose", is_flag=True, help="상세 디버그 출력")
@click.option("--kubeconfig", default=None, help="kubeconfig 파일 경로")
@click.option("--context", "kube_context", default=None, help="kubeconfig 컨텍스트")
def status(config_path, networks, verbose, kubeconfig, kube_context):
    """설정에 포함된 노드의 현재 상태 조회"""
    try:
        bundle = load_bundle(config_path)
    except ConfigError as e:
        console.print(f"[red]✗ 설정 파일 오류: {e}[/red]")
        sys.exit(EXIT_FAILURE)

    init_logger(None, "warn", verbose)
    orchestrator = ReconcileOrchestrator(
        bundle, runner=KubectlRunner(kubeconfig=kubeconfig, context=kube_context), verbose=verbose
    )

    try:
        if bundle.has_node_labels():
            nodes = _unique(n for role in bundle.node_labels.node_roles.values() for n in role.nodes)
            state = orchestrator.labeling_service().get_current_state(nodes)
            table = Table(title="노드 레이블")
            table.add_column("노드", style="cyan")
            table.add_column("레이블", style="white")
            for node_name, labels in state.items():
                table.add_row(node_name, "\n".join(f"{k}={v}" for k, v in sorted(labels.items())) or "-")
            console.print(table)

        if bundle.has_vlans():
            state = orchestrator.vlan_service().get_current_state(bundle.vlans.all_nodes())
            table = Table(title="VLAN 인터페이스")
            table.add_column("노드", style="cyan")
            table.add_column("인터페이스")
            table.add_column("VLAN ID", justify="right")
            table.add_column("주소")
            for node_name, interfaces in state.items():
                if not interfaces:
                    table.add_row(node_name, "-", "-", "-")
                for info in interfaces:
                    table.add_row(node_name, info.interface, str(info.vlan_id), info.ip_address or "-")
            console.print(table)

        if bundle.has_tests() or networks:
            if not networks:
                networks = list(bundle.vlans.vlans) if bundle.vlans else []
            if networks:
                service = orchestrator.nethealth_service() if bundle.tests else NetHealthCheckService(
                    KubectlExecutor(runner=orchestrator.runner), vlan_config=bundle.vlans
                )
                state = service.get_current_state(list(networks))
                table = Table(title="네트워크 상태")
                table.add_column("네트워크", style="cyan")
                table.add_column("서브넷")
                table.add_column("정상 노드")
                table.add_column("비정상 노드")
                table.add_column("상태")
                for name, health in state.items():
                    color = "green" if health.overall_health == "healthy" else "red"
                    table.add_row(
                        name,
                        health.subnet or "-",
                        ", ".join(health.healthy_nodes) or "-",
                        ", ".join(health.unhealthy_nodes) or "-",
                        f"[{color}]{health.overall_health}[/{color}]",
                    )
                console.print(table)
    except KictlError as e:
        console.print(f"[red]✗ 상태 조회 실패: {e}[/red]")
        sys.exit(EXIT_FAILURE)


@cli.command()
@click.argument("output", type=click.Path(), default="./kictl-config.yaml")
@click.option("--multi", is_flag=True, help="레이블, VLAN, 테스트 문서를 모두 포함")
def init(output, multi):
    """샘플 설정 파일 생성"""
    if multi:
        generate_multi_sample_config(output)
    else:
        generate_sample_config(output)
    console.print(f"[green]✓ 샘플 설정 파일 생성: {output}[/green]")
    console.print(f"[cyan]설정 파일을 편집한 후 다음 명령어로 실행하세요:[/cyan]")
    console.print(f"[cyan]  kictl apply --config {output} --dry-run[/cyan]")


@cli.command()
@click.option("-c", "--config", "config_path", type=click.Path(exists=True),
              required=True, help="설정 파일 경로")
def validate(config_path):
    """설정 파일 유효성 검사"""
    try:
        bundle = load_bundle(config_path)
    except ConfigError as e:
        console.print(f"[red]✗ 설정 파일 오류: {e}[/red]")
        sys.exit(EXIT_FAILURE)

    console.print("[green]✓ 설정 파일이 유효합니다.[/green]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("종류", style="cyan")
    table.add_column("이름")
    table.add_column("네임스페이스")
    table.add_column("내용")
    table.add_column("Dry Run")

    if bundle.node_labels:
        conf = bundle.node_labels
        table.add_row(conf.kind, conf.metadata.name, conf.metadata.namespace,
                      f"{len(conf.node_roles)} roles, {conf.node_count()} nodes",
                      "예" if conf.tool.dry_run else "아니오")
    if bundle.vlans:
        conf = bundle.vlans
        table.add_row(conf.kind, conf.metadata.name, conf.metadata.namespace,
                      ", ".join(f"{name}({vlan.id})" for name, vlan in conf.vlans.items()),
                      "예" if conf.tool.dry_run else "아니오")
    if bundle.tests:
        conf = bundle.tests
        table.add_row(conf.kind, conf.metadata.name, conf.metadata.namespace,
                      f"{len(conf.tests)} tests",
                      "예" if conf.tool.dry_run else "아니오")

    console.print(table)


def _unique(items) -> List[str]:
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def main():
    """메인 엔트리 포인트"""
    cli()


if __name__ == '__main__':
    main()
