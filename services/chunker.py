"""
테이블 목록 청크 분할.

정렬된 테이블 목록을 고정 크기 배치로 나누어 동시 실행 수를 제한한다.
배치는 순차 실행되고, 배치 내 테이블은 병렬 처리된다.
"""

from typing import List, Sequence


def chunk_tables(tables: Sequence[str], size: int) -> List[List[str]]:
    """
    테이블 목록을 size 이하 크기의 배치 리스트로 분할한다.

    입력 순서는 배치 내부와 배치 간에 모두 유지된다.
    size가 0 이하이면 1로 간주한다 (완전 순차 실행).

    @param tables  정렬된 테이블명 시퀀스
    @param size    배치 최대 크기
    @returns       ceil(N / size)개의 배치 리스트 (입력이 비면 빈 리스트)

    @example
        chunk_tables(["a", "b", "c"], 2)   # -> [["a", "b"], ["c"]]
        chunk_tables(["a", "b"], 0)        # -> [["a"], ["b"]]
    """
    if size <= 0:
        size = 1
    items = list(tables)
    return [items[i:i + size] for i in range(0, len(items), size)]
