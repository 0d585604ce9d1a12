import pytest

from mailcomposer.builder import MimeTreeBuilder, format_date, format_message_id
from mailcomposer.exceptions import (
    TreeInvariantError,
    UnresolvedAttachmentError,
    UnsupportedEncodingError,
)
from mailcomposer.models import MessageDescription
from mailcomposer.nodes import ContentNode, MultipartNode, walk


def build(data, settings=None, keep_bcc=False):
    description = MessageDescription.model_validate(data)
    return MimeTreeBuilder(description, keep_bcc=keep_bcc, settings=settings).build()


def child_types(node):
    return [child.content_type for child in node.child_nodes]


class TestStructure:

    def test_text_only_is_single_node(self):
        root = build({"text": "def"}).root
        assert isinstance(root, ContentNode)
        assert root.content_type == "text/plain"

    def test_html_only_is_single_node(self):
        root = build({"html": "<b>def</b>"}).root
        assert isinstance(root, ContentNode)
        assert root.content_type == "text/html"

    def test_text_and_html_is_alternative(self):
        root = build({"text": "abc", "html": "def"}).root
        assert root.content_type == "multipart/alternative"
        assert child_types(root) == ["text/plain", "text/html"]

    def test_watch_html_between_text_and_html(self):
        root = build({"text": "abc", "html": "def", "watchHtml": "ghi"}).root
        assert child_types(root) == ["text/plain", "text/watch-html", "text/html"]

    def test_text_and_attachment_is_mixed(self):
        root = build({"text": "abc", "attachments": [{"content": "abc"}]}).root
        assert root.content_type == "multipart/mixed"
        assert child_types(root) == ["text/plain", "application/octet-stream"]

    def test_multiple_attachments_is_mixed(self):
        root = build({"attachments": [{"content": "abc"}, {"content": "def"}]}).root
        assert root.content_type == "multipart/mixed"
        assert len(root.child_nodes) == 2

    def test_html_and_cid_attachments_is_related(self, related_description):
        root = build(related_description).root
        assert root.content_type == "multipart/related"
        assert child_types(root) == [
            "text/html", "application/octet-stream", "application/octet-stream",
        ]
        cids = [dict(child.headers).get("Content-Id") for child in root.child_nodes[1:]]
        assert cids == ["<aaa>", "<bbb>"]

    def test_related_wraps_alternative_block(self):
        root = build({
            "text": "abc",
            "html": "def",
            "attachments": [{"content": "abc", "cid": "aaa"}],
        }).root
        assert root.content_type == "multipart/related"
        assert child_types(root) == ["multipart/alternative", "application/octet-stream"]

    def test_full_nesting(self, test_settings):
        root = build({
            "text": "abc",
            "html": "def",
            "baseBoundary": "test",
            "attachments": [
                {"content": "img", "cid": "aaa"},
                {"content": "doc", "filename": "doc.txt"},
            ],
        }, test_settings).root
        assert root.content_type == "multipart/mixed"
        related = root.child_nodes[0]
        alternative = related.child_nodes[0]
        assert related.content_type == "multipart/related"
        assert alternative.content_type == "multipart/alternative"
        assert alternative.boundary == "----sinikael-?=_1-test"
        assert related.boundary == "----sinikael-?=_2-test"
        assert root.boundary == "----sinikael-?=_3-test"

    def test_single_cid_attachment_without_text(self):
        root = build({"attachments": [{"content": "abc", "cid": "aaa"}]}).root
        assert isinstance(root, ContentNode)
        assert root.content_type == "application/octet-stream"

    def test_cid_attachments_without_text_become_mixed(self):
        root = build({
            "attachments": [{"content": "a", "cid": "aaa"}, {"content": "b"}],
        }).root
        assert root.content_type == "multipart/mixed"
        assert len(root.child_nodes) == 2

    def test_empty_message(self):
        root = build({}).root
        assert isinstance(root, ContentNode)
        assert root.content_type == "text/plain"
        assert root.body == b""

    def test_calendar_event(self):
        root = build({
            "text": "abc",
            "icalEvent": {"content": "BEGIN:VCALENDAR", "method": "request"},
        }).root
        assert child_types(root) == [
            "text/plain", "text/calendar; charset=utf-8; method=REQUEST",
        ]

    def test_calendar_default_method(self):
        root = build({"icalEvent": "BEGIN:VCALENDAR"}).root
        assert root.content_type == "text/calendar; charset=utf-8; method=PUBLISH"

    def test_explicit_alternatives_come_last(self):
        root = build({
            "text": "abc",
            "html": "def",
            "alternatives": [{"content": "# md", "contentType": "text/markdown"}, "plain"],
        }).root
        assert child_types(root) == ["text/plain", "text/html", "text/markdown", "text/plain"]

    def test_every_multipart_has_two_children(self, related_description):
        compiled = build(dict(related_description, text="abc", attachments=[
            {"content": "a", "cid": "aaa"}, {"content": "b"},
        ]))
        for node in walk(compiled.root):
            if isinstance(node, MultipartNode):
                assert len(node.child_nodes) >= 2

    def test_boundaries_unique(self):
        compiled = build({
            "text": "abc",
            "html": "def",
            "attachments": [{"content": "a", "cid": "aaa"}, {"content": "b"}],
        })
        boundaries = [n.boundary for n in walk(compiled.root) if isinstance(n, MultipartNode)]
        assert len(boundaries) == 3
        assert len(set(boundaries)) == 3


class TestTextParts:

    def test_ascii_text_has_no_charset(self):
        root = build({"text": "abc"}).root
        assert dict(root.headers) == {
            "Content-Type": "text/plain",
            "Content-Transfer-Encoding": "7bit",
        }

    def test_non_ascii_text_gets_charset(self):
        root = build({"text": "tere õhtu"}).root
        assert root.content_type == "text/plain; charset=utf-8"
        assert root.transfer_encoding == "quoted-printable"
        assert root.body == b"tere =C3=B5htu"

    def test_text_encoding_applies_to_text_and_html(self):
        root = build({"text": "abc", "html": "def", "textEncoding": "base64"}).root
        assert [child.transfer_encoding for child in root.child_nodes] == ["base64", "base64"]

    def test_part_encoding_wins(self):
        root = build({
            "text": {"content": "abc", "contentTransferEncoding": "quoted-printable"},
            "html": "def",
            "textEncoding": "base64",
        }).root
        assert [child.transfer_encoding for child in root.child_nodes] == [
            "quoted-printable", "base64",
        ]

    def test_unsupported_encoding_fails_build(self):
        with pytest.raises(UnsupportedEncodingError):
            build({"text": "abc", "textEncoding": "uuencode"})

    def test_base64_source_encoding(self):
        root = build({"text": {"content": "YWJj", "encoding": "base64"}}).root
        assert root.body == b"abc"

    def test_declared_codec_becomes_charset(self):
        root = build({"text": {"content": "café", "encoding": "latin-1"}}).root
        assert root.content_type == "text/plain; charset=iso-8859-1"
        assert root.body == b"caf=E9"

    def test_undecodable_codec_falls_back_to_utf8_charset(self):
        root = build({"text": {"content": "café", "encoding": "no-such-codec"}}).root
        assert root.content_type == "text/plain; charset=utf-8"

    def test_attachment_declared_codec_becomes_charset(self):
        node = build({"attachments": [
            {"content": "café", "encoding": "latin-1", "filename": "a.txt"},
        ]}).root
        assert node.content_type == "text/plain; charset=iso-8859-1"

    def test_raw_text(self):
        root = build({"text": {"content": "X-Raw: 1\r\n\r\nbody", "raw": True}}).root
        assert root.raw is True
        assert root.headers == ()
        assert root.body == b"X-Raw: 1\r\n\r\nbody"


class TestAttachments:

    def attachment(self, data):
        return build({"attachments": [data]}).root

    def test_defaults(self):
        node = self.attachment({"content": "abc", "filename": "test.txt"})
        assert node.headers == (
            ("Content-Type", "text/plain"),
            ("Content-Transfer-Encoding", "7bit"),
            ("Content-Disposition", 'attachment; filename="test.txt"'),
        )
        assert node.body == b"abc"

    def test_binary_type_defaults_to_base64(self):
        node = self.attachment({"content": "abc", "filename": "a.pdf"})
        assert node.content_type == "application/pdf"
        assert node.transfer_encoding == "base64"
        assert node.body == b"YWJj"

    def test_filename_false_suppresses_parameter(self):
        node = self.attachment({"content": "abc", "filename": False, "contentType": "text/plain"})
        assert dict(node.headers)["Content-Disposition"] == "attachment"

    def test_explicit_content_type_and_disposition(self):
        node = self.attachment({
            "content": "abc",
            "filename": "a.bin",
            "contentType": "image/png",
            "contentDisposition": "inline",
        })
        assert node.content_type == "image/png"
        assert dict(node.headers)["Content-Disposition"] == 'inline; filename="a.bin"'

    def test_non_ascii_filename(self):
        node = self.attachment({"content": "abc", "filename": "õ.txt"})
        assert dict(node.headers)["Content-Disposition"] == (
            'attachment; filename="=?UTF-8?Q?=C3=B5=2Etxt?="'
        )

    def test_custom_headers(self):
        node = self.attachment({
            "content": "abc",
            "headers": {"x-single": "a", "X-Multi": ["b", "c"], "content-type": "text/evil"},
        })
        headers = node.headers
        assert ("X-Single", "a") in headers
        assert [v for k, v in headers if k == "X-Multi"] == ["b", "c"]
        assert [v for k, v in headers if k == "Content-Type"] == ["application/octet-stream"]

    def test_cid_already_wrapped(self):
        node = build({"html": "x", "attachments": [{"content": "a", "cid": "<aaa>"}]}).root
        assert dict(node.child_nodes[1].headers)["Content-Id"] == "<aaa>"

    def test_unresolved_path_raises(self):
        with pytest.raises(UnresolvedAttachmentError):
            build({"text": "abc", "attachments": [{"path": "/tmp/file.txt"}]})

    def test_attachment_without_source_skipped(self):
        root = build({"text": "abc", "attachments": [{"filename": "nothing.txt"}]}).root
        assert isinstance(root, ContentNode)
        assert root.content_type == "text/plain"

    def test_raw_attachment(self):
        raw = "Content-Type: message/rfc822\r\n\r\nSubject: inner\r\n\r\nhello"
        root = build({"text": "abc", "attachments": [{"content": raw, "raw": True}]}).root
        node = root.child_nodes[1]
        assert node.raw is True
        assert node.body == raw.encode("utf-8")


class TestTopLevelHeaders:

    def test_header_order(self, fixed_date):
        compiled = build({
            "from": "a@example.com",
            "to": "b@example.com",
            "cc": "c@example.com",
            "bcc": "d@example.com",
            "replyTo": "e@example.com",
            "subject": "hi",
            "messageId": "id@example.com",
            "date": fixed_date,
            "headers": {"X-Mailer": "test"},
        }, keep_bcc=True)
        assert [name for name, _ in compiled.headers] == [
            "From", "To", "Cc", "Bcc", "Reply-To", "Subject", "Message-Id", "Date", "X-Mailer",
        ]

    def test_bcc_left_out_by_default(self, bcc_description):
        compiled = build(bcc_description)
        assert "Bcc" not in [name for name, _ in compiled.headers]
        assert compiled.envelope.to == ("test2@example.com", "test3@example.com")

    def test_custom_bcc_header_follows_keep_bcc(self):
        data = {"text": "abc", "headers": {"bcc": "hidden@example.com"}}
        assert build(data).get_header("Bcc") == ""
        assert build(data, keep_bcc=True).get_header("Bcc") == "hidden@example.com"

    def test_structural_custom_headers_dropped(self, caplog):
        compiled = build({
            "text": "abc",
            "headers": {"Content-Type": "text/html", "mime-version": "2.0", "X-Keep": "1"},
        })
        assert compiled.get_header("Content-Type") == "text/plain"
        assert compiled.get_header("MIME-Version") == "1.0"
        assert compiled.get_header("X-Keep") == "1"
        assert "Ignoring custom" in caplog.text

    def test_custom_message_id_header_used(self):
        compiled = build({"text": "abc", "headers": {"Message-ID": "custom@host"}})
        assert compiled.message_id == "<custom@host>"
        assert compiled.get_header("Message-Id") == "<custom@host>"

    def test_description_message_id_wins(self):
        compiled = build({
            "text": "abc",
            "messageId": "<own@host>",
            "headers": {"Message-ID": "custom@host"},
        })
        assert compiled.get_header("Message-Id") == "<own@host>"

    def test_generated_message_id_uses_sender_domain(self):
        compiled = build({"from": "a@äge.ee", "text": "abc"})
        assert compiled.message_id.startswith("<")
        assert compiled.message_id.endswith("@xn--ge-uia.ee>")

    def test_generated_message_id_default_domain(self, test_settings):
        compiled = build({"text": "abc"}, test_settings)
        assert compiled.message_id.endswith(f"@{test_settings.message_id_domain}>")

    def test_subject_line_breaks(self):
        assert build({"subject": "tere\ntere!"}).get_header("Subject") == "tere tere!"

    def test_multiple_senders_first_in_envelope(self):
        compiled = build({"from": "a@example.com, b@example.com", "to": "c@example.com"})
        assert compiled.envelope.from_ == "a@example.com"
        assert compiled.get_header("From") == "a@example.com, b@example.com"

    def test_envelope_deduplicates_recipients(self):
        compiled = build({
            "to": "a@example.com, b@example.com",
            "cc": "b@example.com",
            "bcc": ["c@example.com", "a@example.com"],
        })
        assert compiled.envelope.as_dict() == {
            "from": None,
            "to": ["a@example.com", "b@example.com", "c@example.com"],
        }


class TestFormatting:

    def test_message_id(self):
        assert format_message_id("abc") == "<abc>"
        assert format_message_id("<abc>") == "<abc>"

    def test_date_string_verbatim(self, fixed_date):
        assert format_date(fixed_date) == fixed_date

    def test_naive_datetime_is_utc(self):
        from datetime import datetime
        assert format_date(datetime(2014, 6, 21, 10, 52, 44)) == "Sat, 21 Jun 2014 10:52:44 +0000"


class TestNodeInvariants:

    def test_multipart_needs_two_children(self):
        child = ContentNode("text/plain", "7bit", (), b"")
        with pytest.raises(TreeInvariantError):
            MultipartNode("multipart/mixed", "b", (), (child,))

    def test_multipart_type_checked(self):
        child = ContentNode("text/plain", "7bit", (), b"")
        with pytest.raises(TreeInvariantError):
            MultipartNode("text/plain", "b", (), (child, child))

    def test_walk_is_preorder(self):
        root = build({"text": "abc", "html": "def", "attachments": [{"content": "a"}]}).root
        assert [n.content_type for n in walk(root)] == [
            "multipart/mixed", "multipart/alternative", "text/plain", "text/html",
            "application/octet-stream",
        ]
