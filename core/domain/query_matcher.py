"""
클라이언트 측 검색어 평가기

watch 처럼 서버 검색을 쓸 수 없는 경로에서 Gmail 검색 문법의 일부를
로컬로 평가합니다. 서버 전용 연산자와 알 수 없는 연산자는 한 번만 경고하고
무시합니다.
"""

import re
from typing import List, NamedTuple, Optional, Set

from .entities import ParsedMessage, Sender
from .ports import LoggerPort

SUPPORTED_OPERATORS = frozenset({"from", "to", "cc", "subject", "is", "has", "label"})

SERVER_ONLY_OPERATORS = frozenset({
    "in", "after", "before", "newer_than", "older_than", "filename",
    "size", "larger", "smaller", "deliveredto", "rfc822msgid", "list", "category",
})

TERM_PATTERN = re.compile(r'(-?)(?:(\w+):)?(?:"([^"]*)"|(\S+))', re.IGNORECASE)


class QueryTerm(NamedTuple):
    negated: bool
    operator: Optional[str]
    value: str


def sender_matches(sender: Sender, value: str) -> bool:
    return value in f"{sender.name} {sender.email}".lower()


class QueryMatcher:
    """검색어 평가기. 경고한 연산자는 인스턴스 단위로 기억합니다."""

    def __init__(self, logger: Optional[LoggerPort] = None):
        self.logger = logger
        self._warned: Set[str] = set()

    def _warn_once(self, operator: str, message: str) -> None:
        if operator in self._warned:
            return
        self._warned.add(operator)
        if self.logger:
            self.logger.warning(message)

    def parse_terms(self, query: str) -> List[QueryTerm]:
        """검색어를 항목 목록으로 분해합니다. 값은 소문자로 정규화됩니다."""
        terms: List[QueryTerm] = []
        for match in TERM_PATTERN.finditer(query or ""):
            negated = match.group(1) == "-"
            operator = match.group(2).lower() if match.group(2) else None
            value = (match.group(3) if match.group(3) is not None else match.group(4) or "").lower()
            if not value:
                continue
            if operator is None and value == "or":
                continue
            if operator in SERVER_ONLY_OPERATORS:
                self._warn_once(
                    operator,
                    f"검색어: '{operator}:' 는 서버 전용 연산자라 무시합니다 (mail list --query 사용)",
                )
                continue
            if operator is not None and operator not in SUPPORTED_OPERATORS:
                self._warn_once(operator, f"검색어: 알 수 없는 연산자 '{operator}:' 를 무시합니다")
                continue
            terms.append(QueryTerm(negated, operator, value))
        return terms

    def matches(self, message: ParsedMessage, query: Optional[str]) -> bool:
        """모든 항목을 만족하면 True (AND 결합). 빈 검색어는 항상 일치합니다."""
        if not query:
            return True
        return all(self.matches_term(message, term) for term in self.parse_terms(query))

    @staticmethod
    def matches_term(message: ParsedMessage, term: QueryTerm) -> bool:
        operator, value = term.operator, term.value

        if operator == "from":
            result = sender_matches(message.sender, value)
        elif operator == "to":
            result = any(sender_matches(r, value) for r in message.to)
        elif operator == "cc":
            result = any(sender_matches(r, value) for r in message.cc)
        elif operator == "subject":
            result = value in message.subject.lower()
        elif operator == "is":
            if value == "unread":
                result = message.unread
            elif value == "read":
                result = not message.unread
            elif value == "starred":
                result = message.starred
            else:
                result = False
        elif operator == "has":
            result = value == "attachment" and message.has_attachments
        elif operator == "label":
            # 중첩 라벨은 "/" 대신 "-" 로도 쓸 수 있다
            result = any(
                label.lower() == value or label.lower().replace("/", "-") == value
                for label in message.label_ids
            )
        else:
            result = value in message.subject.lower() or sender_matches(message.sender, value)

        return not result if term.negated else result


_default_matcher = QueryMatcher()


def matches(message: ParsedMessage, query: Optional[str]) -> bool:
    """기본 평가기로 검색어를 평가합니다."""
    return _default_matcher.matches(message, query)
