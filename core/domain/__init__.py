"""
Domain 패키지

도메인 엔티티, 오류 값, 포트, 순수 파싱/검색어 평가 로직을 정의합니다.
외부 서비스 의존성 없이 동기화 규칙만 포함합니다.

주요 엔티티:
- AccountIdentity: 계정 식별자 (email, app_id)
- Credential: OAuth 자격 증명
- CacheEntry: TTL 캐시 항목
- ParsedMessage / ThreadData / ThreadListItem: 메일 읽기 모델
- WatchEvent: 새 메시지 이벤트
"""
