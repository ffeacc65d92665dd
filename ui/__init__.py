"""
ui 패키지.

터미널 기반 출력 컴포넌트를 제공한다.

구성 요소:
    - ConsoleLog : 색상 로그 출력, 요약 표시, 로그 내보내기

외부 모듈에서는 패키지 레벨 임포트를 사용한다:
    from ui import ConsoleLog
"""

from ui.console_log import ConsoleLog

__all__ = ["ConsoleLog"]
