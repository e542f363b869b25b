"""
원격 페이로드 파싱

캐시에는 원격 원본 페이로드를 저장하고, 읽을 때 이 모듈의 순수 함수로
읽기 모델을 만듭니다. 파서가 바뀌어도 캐시를 다시 받을 필요가 없습니다.
"""

import base64
import binascii
from datetime import datetime, timezone
from email.utils import getaddresses, parsedate_to_datetime
from typing import Any, Dict, List, Optional, Tuple

from .entities import AttachmentMeta, ParsedMessage, Sender, ThreadData, ThreadListItem

FALLBACK_SENDER_EMAIL = "no-sender@unknown"

SYSTEM_LABEL_IDS = frozenset({
    "INBOX", "TRASH", "SPAM", "DRAFT", "SENT", "STARRED", "UNREAD", "IMPORTANT",
    "CATEGORY_PERSONAL", "CATEGORY_SOCIAL", "CATEGORY_UPDATES", "CATEGORY_FORUMS",
    "CATEGORY_PROMOTIONS", "MUTED",
})


def _as_dict(value: Any, field: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{field} 형식 오류: {type(value).__name__}")
    return value


def _as_list(value: Any, field: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{field} 형식 오류: {type(value).__name__}")
    return value


def _as_dict_list(value: Any, field: str) -> List[Dict[str, Any]]:
    items = _as_list(value, field)
    for item in items:
        if not isinstance(item, dict):
            raise ValueError(f"{field} 항목 형식 오류: {type(item).__name__}")
    return items


def decode_base64url(encoded: str) -> str:
    """base64url 문자열을 UTF-8 텍스트로 디코딩합니다."""
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode()).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return ""


def _header_field(header: Dict[str, Any], field: str) -> str:
    value = header.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"헤더 {field} 형식 오류: {type(value).__name__}")
    return value


def _header(headers: List[Dict[str, Any]], name: str) -> Optional[str]:
    lowered = name.lower()
    for header in headers:
        if _header_field(header, "name").lower() == lowered:
            return _header_field(header, "value") if header.get("value") is not None else None
    return None


def _subject(headers: List[Dict[str, Any]]) -> str:
    subject = _header(headers, "subject")
    if subject is None:
        subject = "(no subject)"
    return subject.replace('"', "").strip()


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_from(header: str) -> Sender:
    """From 헤더를 Sender로 변환합니다. 이름이 없으면 주소를 이름으로 씁니다."""
    addresses = [(name, addr) for name, addr in getaddresses([header or ""]) if name or addr]
    if not addresses:
        return Sender(name="", email=FALLBACK_SENDER_EMAIL)
    name, addr = addresses[0]
    return Sender(name=name or addr, email=addr or FALLBACK_SENDER_EMAIL)


def parse_address_list(*headers: str) -> List[Sender]:
    """To/Cc 헤더 목록을 Sender 목록으로 변환합니다."""
    values = [h for h in headers if h and h.strip()]
    if not values:
        return []
    return [
        Sender(name=name, email=addr or FALLBACK_SENDER_EMAIL)
        for name, addr in getaddresses(values)
        if name or addr
    ]


def _find_body_part(parts: List[Dict[str, Any]], mime_type: str) -> Optional[str]:
    for part in parts:
        data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == mime_type and data:
            return data
        if part.get("parts"):
            found = _find_body_part(part["parts"], mime_type)
            if found:
                return found
    return None


def extract_body(payload: Dict[str, Any]) -> Tuple[str, str]:
    """본문과 본문 MIME 타입을 꺼냅니다. HTML을 우선합니다."""
    data = (payload.get("body") or {}).get("data")
    if data:
        return decode_base64url(data), payload.get("mimeType") or "text/plain"

    parts = payload.get("parts")
    if not parts:
        return "", "text/plain"

    html = _find_body_part(parts, "text/html")
    if html:
        return decode_base64url(html), "text/html"

    text = _find_body_part(parts, "text/plain")
    if text:
        return decode_base64url(text), "text/plain"

    for part in parts:
        if part.get("parts"):
            body, mime_type = extract_body(part)
            if body:
                return body, mime_type

    return "", "text/plain"


def extract_attachments(parts: List[Dict[str, Any]]) -> List[AttachmentMeta]:
    """첨부 파일 메타데이터. Content-ID가 있는 인라인 파트는 제외합니다."""
    results: List[AttachmentMeta] = []
    for part in parts:
        body = part.get("body") or {}
        if part.get("filename") and body.get("attachmentId"):
            headers = part.get("headers") or []
            disposition = (_header(headers, "content-disposition") or "").lower()
            has_content_id = _header(headers, "content-id") is not None
            if "inline" not in disposition or not has_content_id:
                results.append(AttachmentMeta(
                    filename=part["filename"],
                    mime_type=part.get("mimeType") or "application/octet-stream",
                    size=int(body.get("size") or 0),
                    attachment_id=body["attachmentId"],
                ))
        if part.get("parts"):
            results.extend(extract_attachments(part["parts"]))
    return results


def parse_raw_message(raw: Dict[str, Any]) -> ParsedMessage:
    """원본 메시지 페이로드를 ParsedMessage로 변환합니다.

    중첩 구조가 어긋난 페이로드는 ValueError로 거부합니다.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"메시지 페이로드 형식 오류: {type(raw).__name__}")

    payload = _as_dict(raw.get("payload"), "payload")
    headers = _as_dict_list(payload.get("headers"), "payload.headers")
    parts = _as_dict_list(payload.get("parts"), "payload.parts")
    label_ids = list(_as_list(raw.get("labelIds"), "labelIds"))
    cc_headers = [
        _header_field(h, "value") for h in headers if _header_field(h, "name").lower() == "cc"
    ]
    try:
        body, body_mime = extract_body(payload)
        attachments = extract_attachments(parts)
    except (AttributeError, TypeError) as e:
        raise ValueError(f"MIME 파트 구조 오류: {e}") from e

    return ParsedMessage(
        id=raw.get("id") or "",
        thread_id=raw.get("threadId") or "",
        subject=_subject(headers),
        sender=parse_from(_header(headers, "from") or ""),
        to=parse_address_list(_header(headers, "to") or ""),
        cc=parse_address_list(*cc_headers),
        date=_parse_date(_header(headers, "date")),
        snippet=raw.get("snippet") or "",
        body=body,
        body_html=body_mime == "text/html",
        label_ids=label_ids,
        unread="UNREAD" in label_ids,
        starred="STARRED" in label_ids,
        is_draft="DRAFT" in label_ids,
        mime_type=payload.get("mimeType") or body_mime,
        attachments=attachments,
        history_id=raw.get("historyId"),
    )


def _unique_labels(label_lists: List[List[str]]) -> List[str]:
    seen: Dict[str, None] = {}
    for labels in label_lists:
        for label in labels:
            seen.setdefault(label, None)
    return list(seen)


def parse_raw_thread(raw: Dict[str, Any]) -> ThreadData:
    """원본 스레드 페이로드를 ThreadData로 변환합니다."""
    if not isinstance(raw, dict):
        raise ValueError(f"스레드 페이로드 형식 오류: {type(raw).__name__}")

    messages = [parse_raw_message(m) for m in _as_list(raw.get("messages"), "messages")]
    if not messages:
        return ThreadData(id=raw.get("id") or "", history_id=raw.get("historyId"), subject="")

    non_drafts = [m for m in messages if not m.is_draft]
    latest = non_drafts[-1] if non_drafts else messages[-1]

    return ThreadData(
        id=raw.get("id") or "",
        history_id=raw.get("historyId"),
        subject=latest.subject,
        sender=latest.sender,
        date=latest.date,
        snippet=latest.snippet,
        labels=_unique_labels([m.label_ids for m in messages]),
        has_unread=any(m.unread for m in messages),
        message_count=len(non_drafts),
        messages=messages,
    )


def parse_raw_thread_list_item(raw: Dict[str, Any]) -> ThreadListItem:
    """원본 스레드 페이로드를 목록 항목으로 변환합니다."""
    if not isinstance(raw, dict):
        raise ValueError(f"스레드 페이로드 형식 오류: {type(raw).__name__}")

    messages = _as_dict_list(raw.get("messages"), "messages")
    label_lists = [_as_list(m.get("labelIds"), "labelIds") for m in messages]
    non_drafts = [m for m, ids in zip(messages, label_lists) if "DRAFT" not in ids]
    latest = non_drafts[-1] if non_drafts else (messages[-1] if messages else {})
    payload = _as_dict(latest.get("payload"), "payload")
    headers = _as_dict_list(payload.get("headers"), "payload.headers")
    labels = _unique_labels(label_lists)

    return ThreadListItem(
        id=raw.get("id") or "",
        history_id=raw.get("historyId"),
        subject=_subject(headers),
        sender=parse_from(_header(headers, "from") or ""),
        date=_parse_date(_header(headers, "date")),
        snippet=latest.get("snippet") or "",
        labels=labels,
        has_unread="UNREAD" in labels,
        message_count=len(non_drafts),
    )


def parse_raw_labels(raw_labels: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """labels.list 응답을 라벨 목록으로 변환합니다."""
    labels = []
    for label in _as_dict_list(raw_labels, "labels"):
        color = _as_dict(label.get("color"), "color")
        labels.append({
            "id": label.get("id") or "",
            "name": label.get("name") or "",
            "type": label.get("type") or ("system" if label.get("id") in SYSTEM_LABEL_IDS else "user"),
            "message_list_visibility": label.get("messageListVisibility"),
            "label_list_visibility": label.get("labelListVisibility"),
            "color": {
                "background_color": color.get("backgroundColor") or "",
                "text_color": color.get("textColor") or "",
            } if color else None,
        })
    return labels
