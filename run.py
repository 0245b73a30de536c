#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Local MCP Gateway - CLI Entry Point
MCP 서버 정의 디렉터리를 감시하며 프록시와 통합 OpenAPI 문서를 제공
"""
import argparse
import sys
from pathlib import Path
from typing import List, Optional

# 프로젝트 루트를 Python 경로에 추가
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

import uvicorn
from pydantic import ValidationError as SettingsValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from mcp_gateway import __version__
from mcp_gateway.config import AppSettings, reload_settings
from mcp_gateway.registry.definitions import is_definition_file, load_service_definition
from mcp_gateway.exceptions import ServiceDefinitionError
from mcp_gateway.utils.logging_config import setup_logging

console = Console()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """명령행 인자 (환경변수 CHATGPT_GATEWAY_* 보다 우선)"""
    parser = argparse.ArgumentParser(
        prog="mcp-gateway",
        description="Local MCP Gateway - 로컬 MCP 서버 정의 기반 프록시",
    )
    parser.add_argument(
        "--config",
        help="MCP 서버 정의(YAML) 디렉터리 (기본값: ./mcp_servers)",
    )
    parser.add_argument(
        "--addr",
        help="수신 주소 (예: :8080, 127.0.0.1:9000)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="로그 레벨",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser.parse_args(argv)


def show_header(settings: AppSettings):
    """헤더 표시"""
    host, port = settings.resolve_listen_address()
    header = Panel(
        "[bold cyan]Local MCP Gateway[/bold cyan]\n"
        f"[dim]config: {settings.config}  |  listen: {host}:{port}[/dim]",
        border_style="cyan",
        padding=(1, 2),
    )
    console.print(header)


def show_services(config_dir: str):
    """시작 시점에 발견된 서비스 정의 표시 (실제 로드는 게이트웨이가 수행)"""
    directory = Path(config_dir)
    files = sorted(p for p in directory.iterdir() if is_definition_file(p)) if directory.is_dir() else []
    if not files:
        console.print(f"[yellow]서비스 정의가 없습니다. {directory} 에 YAML 파일을 추가하세요.[/yellow]")
        return

    table = Table(title="발견된 MCP 서비스")
    table.add_column("파일", style="dim")
    table.add_column("서비스", style="cyan")
    table.add_column("주소")
    table.add_column("엔드포인트", justify="right")

    for path in files:
        try:
            service = load_service_definition(path)
        except ServiceDefinitionError as e:
            table.add_row(path.name, "[red]invalid[/red]", f"[red]{e.message}[/red]", "-")
            continue
        table.add_row(path.name, service.name, service.address, str(len(service.endpoints)))

    console.print(table)


def main(argv: Optional[List[str]] = None) -> int:
    """메인 함수"""
    args = parse_args(argv)

    try:
        settings = reload_settings(config=args.config, addr=args.addr, log_level=args.log_level)
    except SettingsValidationError as e:
        console.print(f"[red]✗ 설정 오류: {e}[/red]")
        return 2

    setup_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        json_output=settings.log_json,
        service_name="mcp_gateway",
    )

    show_header(settings)
    show_services(settings.config)

    # 설정을 반영한 뒤 앱 생성
    from services.api_gateway.main import create_app

    host, port = settings.resolve_listen_address()
    console.print(f"[green]✓ listening on {host}:{port}[/green]  [dim](config dir: {settings.config})[/dim]")
    uvicorn.run(
        create_app(settings),
        host=host,
        port=port,
        log_config=None,
        timeout_keep_alive=120,
        timeout_graceful_shutdown=10,
    )
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        console.print("\n\n[yellow]게이트웨이가 중단되었습니다.[/yellow]")
        sys.exit(0)
