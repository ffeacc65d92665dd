"""
덤프 헤더 / 푸터 작성.

pg_dump 출력과 같은 형태의 주석 블록으로 DumpMetadata를 기록한다.
헤더에는 복원 세션용 SET 구문을 함께 둔다.

    --
    -- PostgreSQL database dump
    --

    -- Dumped from database version 15.4
    -- Dumped by pgdumper version 0.2.1
    -- Parallel threads: 50
    -- Started on 2024-05-01 12:00:00 +0900 KST
    ...
"""

from typing import TextIO

from config              import APP_NAME
from models.dump_models  import DumpMetadata
from services.exceptions import DumpError


SESSION_SETTINGS = (
    "SET statement_timeout = 0;",
    "SET lock_timeout = 0;",
    "SET client_encoding = 'UTF8';",
    "SET standard_conforming_strings = on;",
    "SET check_function_bodies = false;",
    "SET client_min_messages = warning;",
)


def format_header(metadata: DumpMetadata) -> str:
    lines = [
        "--",
        "-- PostgreSQL database dump",
        "--",
        "",
        f"-- Dumped from database version {metadata.server_version}",
        f"-- Dumped by {APP_NAME} version {metadata.dump_version}",
        f"-- Parallel threads: {metadata.threads_number}",
        f"-- Started on {metadata.complete_time}",
        "",
        *SESSION_SETTINGS,
        "",
        "",
    ]
    return "\n".join(lines)


def format_footer(metadata: DumpMetadata) -> str:
    lines = [
        f"-- Completed on {metadata.complete_time}",
        "",
        "--",
        "-- PostgreSQL database dump complete",
        f"-- Dumped by {APP_NAME} version {metadata.dump_version}",
        "--",
        "",
    ]
    return "\n".join(lines)


def write_header(stream: TextIO, metadata: DumpMetadata):
    """
    헤더 블록을 스트림에 기록한다.

    @throws  DumpError 기록 실패 시 (치명적 오류)
    """
    _write(stream, format_header(metadata), "헤더")


def write_footer(stream: TextIO, metadata: DumpMetadata):
    """
    푸터 블록을 스트림에 기록한다.

    @throws  DumpError 기록 실패 시 (치명적 오류)
    """
    _write(stream, format_footer(metadata), "푸터")


def _write(stream: TextIO, text: str, label: str):
    try:
        stream.write(text)
        stream.flush()
    except (OSError, ValueError) as e:
        raise DumpError(f"{label} 기록 실패: {e}") from e
