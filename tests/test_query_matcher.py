"""클라이언트 측 검색어 평가기 테스트"""

from core.domain.entities import AttachmentMeta, ParsedMessage, Sender
from core.domain.query_matcher import QueryMatcher, QueryTerm, matches

from tests.fakes import RecordingLogger


def message(**overrides) -> ParsedMessage:
    data = dict(
        id="m1",
        subject="Weekly Report for May",
        sender=Sender(name="Carol", email="carol@example.com"),
        to=[Sender(name="Me", email="me@example.com")],
        cc=[Sender(name="Dave", email="dave@example.com")],
        label_ids=["INBOX", "UNREAD"],
        unread=True,
    )
    data.update(overrides)
    return ParsedMessage(**data)


class TestParseTerms:

    def test_quoted_and_negated_terms(self):
        terms = QueryMatcher().parse_terms('-from:alice subject:"weekly report"')
        assert terms == [
            QueryTerm(True, "from", "alice"),
            QueryTerm(False, "subject", "weekly report"),
        ]

    def test_or_keyword_is_dropped(self):
        terms = QueryMatcher().parse_terms("from:bob OR from:carol")
        assert [t.value for t in terms] == ["bob", "carol"]

    def test_server_only_operator_warns_once(self):
        logger = RecordingLogger()
        matcher = QueryMatcher(logger)

        assert matcher.parse_terms("newer_than:2d from:bob") == [QueryTerm(False, "from", "bob")]
        matcher.parse_terms("newer_than:7d")

        warnings = logger.messages("warning")
        assert len(warnings) == 1
        assert "newer_than" in warnings[0]

    def test_unknown_operator_is_ignored(self):
        logger = RecordingLogger()
        assert QueryMatcher(logger).parse_terms("foo:bar") == []
        assert len(logger.messages("warning")) == 1


class TestMatches:

    def test_negated_sender_and_subject_phrase(self):
        query = '-from:alice subject:"weekly report"'
        assert matches(message(), query)
        assert not matches(message(sender=Sender(name="Alice", email="alice@example.com")), query)
        assert not matches(message(subject="Monthly summary"), query)

    def test_empty_query_matches_everything(self):
        assert matches(message(), None)
        assert matches(message(), "")

    def test_recipients(self):
        assert matches(message(), "to:me@example.com")
        assert matches(message(), "cc:dave")
        assert not matches(message(), "cc:erin")

    def test_read_state_and_star(self):
        assert matches(message(), "is:unread")
        assert not matches(message(), "is:read")
        assert not matches(message(), "is:starred")
        assert matches(message(unread=False, starred=True), "is:read is:starred")

    def test_has_attachment(self):
        assert not matches(message(), "has:attachment")
        attached = message(attachments=[AttachmentMeta(filename="a.pdf", attachment_id="x")])
        assert matches(attached, "has:attachment")
        assert matches(message(mime_type="multipart/mixed"), "has:attachment")

    def test_label(self):
        assert matches(message(), "label:inbox")
        assert not matches(message(), "label:work")
        assert matches(message(), "-label:work")

    def test_nested_label_accepts_dash_form(self):
        nested = message(label_ids=["Work/Projects"])
        assert matches(nested, "label:work/projects")
        assert matches(nested, "label:work-projects")
        assert not matches(nested, "label:work")

    def test_bare_word_matches_subject_or_sender(self):
        assert matches(message(), "may")
        assert matches(message(), "carol")
        assert not matches(message(), "invoice")

    def test_terms_are_and_combined(self):
        assert not matches(message(), "from:carol is:starred")
