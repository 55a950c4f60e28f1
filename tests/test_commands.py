import base64

import pytest

from dimap.core.commands import ClientCommandHandler, astring, quoted
from dimap.core.errors import CommandFailed, IllegalStateTransition, MalformedResponse, NotCapable
from dimap.core.session import SessionState

AUTH = SessionState.AUTHENTICATED
SELECTED = SessionState.SELECTED

SELECT_RESPONSE = [
    "* 172 EXISTS",
    "* 1 RECENT",
    "* OK [UNSEEN 12] Message 12 is first unseen",
    "* OK [UIDVALIDITY 3857529045] UIDs valid",
    "* OK [UIDNEXT 4392] Predicted next UID",
    "* FLAGS (\\Answered \\Flagged \\Deleted \\Seen \\Draft)",
    "* OK [PERMANENTFLAGS (\\Deleted \\Seen \\*)] Limited",
    "a1 OK [READ-WRITE] SELECT completed",
]


@pytest.fixture
def handler(make_session):
    def _make(state=SessionState.NOT_AUTHENTICATED):
        return ClientCommandHandler(make_session(state))

    return _make


class TestQuoting:

    def test_quoted_escapes(self):
        assert quoted('a "b" \\c') == '"a \\"b\\" \\\\c"'

    def test_astring_atom(self):
        assert astring("INBOX") == "INBOX"

    @pytest.mark.parametrize("value", ["", "two words", "a(b", 'q"uote', "star*"])
    def test_astring_needs_quotes(self, value):
        assert astring(value).startswith('"')


class TestAnyState:

    def test_capability(self, conn, handler):
        conn.feed("* CAPABILITY IMAP4rev1 STARTTLS AUTH=PLAIN", "a1 OK done")
        caps, res = handler().capability()
        assert caps == ["IMAP4rev1", "STARTTLS", "AUTH=PLAIN"]
        assert res["CAPABILITY"] == ["IMAP4rev1 STARTTLS AUTH=PLAIN"]

    def test_is_capable(self, conn, handler):
        conn.feed("* CAPABILITY IMAP4rev1 IDLE", "a1 OK done", "* CAPABILITY IMAP4rev1 IDLE", "a2 OK done")
        h = handler()
        assert h.is_capable("imap4rev1", "idle")
        assert not h.is_capable("IDLE", "QUOTA")

    def test_noop_returns_table(self, conn, handler):
        conn.feed("* 4 EXISTS", "a1 OK done")
        assert handler(SELECTED).noop()["EXISTS"] == ["4"]

    def test_raw_command_line(self, conn, handler):
        conn.feed("* ID NIL", "a1 OK ID completed")
        h = handler(AUTH)
        res = h.raw("  ID NIL ")
        assert conn.sent == ["a1 ID NIL\r\n"]
        assert res["ID"] == ["NIL"]
        assert h.get_history()[0]["command"] == "ID NIL"

    def test_logout_closes_session(self, conn, handler):
        conn.feed("* BYE bye", "a1 OK done")
        h = handler(AUTH)
        h.logout()
        assert h.session.is_closed()
        assert conn.closed


class TestNotAuthenticated:

    def test_login_quotes_arguments(self, conn, handler):
        conn.feed("a1 OK LOGIN completed")
        h = handler()
        h.login("joe", "pa ss")
        assert conn.sent == ['a1 LOGIN joe "pa ss"\r\n']
        assert h.session.current_state() == AUTH

    def test_login_is_masked_in_history(self, conn, handler):
        conn.feed("a1 NO invalid credentials")
        h = handler()
        with pytest.raises(CommandFailed):
            h.login("joe", "secret")
        entry = h.get_history()[0]
        assert entry["command"] == "LOGIN ****"
        assert entry["error"]
        assert entry["raw"] == "invalid credentials"

    def test_authenticate_plain(self, conn, handler):
        conn.feed("a1 OK done")
        h = handler()
        h.authenticate("joe", "secret")
        token = base64.b64encode(b"\0joe\0secret").decode("ascii")
        assert conn.sent == [f"a1 AUTHENTICATE PLAIN {token}\r\n"]
        assert h.session.current_state() == AUTH

    def test_authenticate_other_mechanism(self, conn, handler):
        with pytest.raises(ValueError, match="CRAM-MD5"):
            handler().authenticate("joe", "secret", mechanism="CRAM-MD5")
        assert conn.sent == []

    def test_starttls_upgrades_transport(self, conn, handler):
        conn.feed("* CAPABILITY IMAP4rev1 STARTTLS", "a1 OK done", "a2 OK Begin TLS negotiation")
        handler().starttls()
        assert conn.sent[-1] == "a2 STARTTLS\r\n"
        assert conn.tls == "default"

    def test_starttls_not_capable(self, conn, handler):
        conn.feed("* CAPABILITY IMAP4rev1", "a1 OK done")
        with pytest.raises(NotCapable):
            handler().starttls()
        assert conn.sent == ["a1 CAPABILITY\r\n"]
        assert conn.tls is None


class TestAuthenticated:

    def test_select_decodes_mailbox_info(self, conn, handler):
        conn.feed(*SELECT_RESPONSE)
        h = handler(AUTH)
        info, res = h.select()
        assert conn.sent == ["a1 SELECT INBOX\r\n"]
        assert info["exists"] == 172
        assert info["recent"] == 1
        assert info["unseen"] == 12
        assert info["uidvalidity"] == 3857529045
        assert info["uidnext"] == 4392
        assert info["flags"] == ["\\Answered", "\\Flagged", "\\Deleted", "\\Seen", "\\Draft"]
        assert info["permanentflags"] == ["\\Deleted", "\\Seen", "\\*"]
        assert h.session.current_state() == SELECTED

    def test_examine_sends_examine(self, conn, handler):
        conn.feed("* 0 EXISTS", "a1 OK [READ-ONLY] done")
        info, _ = handler(AUTH).examine("Sent Items")
        assert conn.sent == ['a1 EXAMINE "Sent Items"\r\n']
        assert info["exists"] == 0
        assert info["flags"] == []
        assert info["uidnext"] is None

    def test_select_requires_authentication(self, conn, handler):
        h = handler()
        with pytest.raises(IllegalStateTransition):
            h.select()
        assert conn.sent == []
        assert h.history[0]["error"]

    def test_list(self, conn, handler):
        conn.feed(
            '* LIST (\\HasNoChildren) "/" INBOX',
            '* LIST (\\Noselect) NIL ""',
            '* LIST () "/" "Public Folders"',
            '* LIST () "/" {5}',
            "Trash",
            "a1 OK LIST completed",
        )
        boxes, _ = handler(AUTH).list()
        assert conn.sent == ['a1 LIST "" *\r\n']
        assert boxes["INBOX"] == {"delim": "/", "flags": ["\\HasNoChildren"]}
        assert boxes[""] == {"delim": None, "flags": ["\\Noselect"]}
        assert boxes["Public Folders"]["flags"] == []
        assert boxes["Trash"]["delim"] == "/"

    def test_lsub(self, conn, handler):
        conn.feed('* LSUB () "." #news.comp.mail.misc', "a1 OK done")
        boxes, _ = handler(AUTH).lsub("#news.*")
        assert conn.sent == ['a1 LSUB "" #news.*\r\n']
        assert list(boxes) == ["#news.comp.mail.misc"]

    def test_list_malformed_entry(self, conn, handler):
        conn.feed("* LIST garbage", "a1 OK done")
        with pytest.raises(MalformedResponse):
            handler(AUTH).list()

    def test_status(self, conn, handler):
        conn.feed("* STATUS blurdybloop (MESSAGES 231 UIDNEXT 44292)", "a1 OK STATUS completed")
        items, _ = handler(AUTH).status("blurdybloop", ["MESSAGES", "UIDNEXT"])
        assert conn.sent == ["a1 STATUS blurdybloop (MESSAGES UIDNEXT)\r\n"]
        assert items == {"MESSAGES": 231, "UIDNEXT": 44292}

    def test_status_string_names(self, conn, handler):
        conn.feed("* STATUS INBOX (UNSEEN 2)", "a1 OK done")
        items, _ = handler(AUTH).status("INBOX", "UNSEEN")
        assert conn.sent == ["a1 STATUS INBOX (UNSEEN)\r\n"]
        assert items == {"UNSEEN": 2}

    def test_status_default_names(self, conn, handler):
        conn.feed("* STATUS INBOX (MESSAGES 1)", "a1 OK done")
        handler(AUTH).status("INBOX")
        assert conn.sent == ["a1 STATUS INBOX (MESSAGES RECENT UIDNEXT UIDVALIDITY UNSEEN)\r\n"]

    def test_status_odd_item_count(self, conn, handler):
        conn.feed("* STATUS INBOX (MESSAGES)", "a1 OK done")
        with pytest.raises(MalformedResponse):
            handler(AUTH).status("INBOX")

    def test_status_rejects_other_types(self, conn, handler):
        with pytest.raises(TypeError):
            handler(AUTH).status("INBOX", 3)
        assert conn.sent == []

    def test_append(self, conn, handler):
        conn.feed("a1 OK APPEND completed")
        handler(AUTH).append("saved", "Subject: hi\r\n\r\nbody", flags=["\\Seen"], date="17-Jul-1996 02:44:25 -0700")
        assert conn.sent == [
            'a1 APPEND saved (\\Seen) "17-Jul-1996 02:44:25 -0700" {19}\r\nSubject: hi\r\n\r\nbody\r\n'
        ]

    def test_append_single_flag(self, conn, handler):
        conn.feed("a1 OK done")
        handler(AUTH).append("saved", "x", flags="\\Draft")
        assert conn.sent == ["a1 APPEND saved (\\Draft) {1}\r\nx\r\n"]

    def test_append_literal_plus(self, conn, handler):
        conn.feed("a1 OK done")
        handler(AUTH).append("saved", "hello", literal_plus=True)
        assert conn.sent == ["a1 APPEND saved {5+}\r\nhello\r\n"]

    def test_append_bytes_counts_octets(self, conn, handler):
        conn.feed("a1 OK done")
        handler(AUTH).append("saved", "Subject: caf\u00e9".encode("utf-8"))
        assert conn.sent == ["a1 APPEND saved {14}\r\nSubject: caf\xc3\xa9\r\n"]

    def test_append_rejects_other_types(self, conn, handler):
        with pytest.raises(TypeError):
            handler(AUTH).append("saved", 42)
        assert conn.sent == []

    def test_mailbox_management(self, conn, handler):
        conn.feed(*["a%d OK done" % i for i in range(1, 6)])
        h = handler(AUTH)
        h.create("Work")
        h.rename("Work", "Old Work")
        h.subscribe("Old Work")
        h.unsubscribe("Old Work")
        h.delete("Old Work")
        assert conn.sent == [
            "a1 CREATE Work\r\n",
            'a2 RENAME Work "Old Work"\r\n',
            'a3 SUBSCRIBE "Old Work"\r\n',
            'a4 UNSUBSCRIBE "Old Work"\r\n',
            'a5 DELETE "Old Work"\r\n',
        ]


class TestSelected:

    def test_search(self, conn, handler):
        conn.feed("* SEARCH 2 84 882", "a1 OK SEARCH completed")
        ids, _ = handler(SELECTED).search(["FLAGGED", "SINCE", "1-Feb-1994"])
        assert conn.sent == ["a1 SEARCH (FLAGGED SINCE 1-Feb-1994)\r\n"]
        assert ids == [2, 84, 882]

    def test_search_without_results(self, conn, handler):
        conn.feed("* SEARCH", "a1 OK done")
        ids, _ = handler(SELECTED).search("ALL")
        assert ids == []

    def test_uid_search_with_charset(self, conn, handler):
        conn.feed("* SEARCH 44", "a1 OK done")
        ids, _ = handler(SELECTED).search("UNSEEN", charset="UTF-8", uid=True)
        assert conn.sent == ["a1 UID SEARCH CHARSET UTF-8 UNSEEN\r\n"]
        assert ids == [44]

    def test_fetch_with_literal(self, conn, handler):
        conn.feed(
            "* 1 FETCH (UID 7 BODY[HEADER] {13}",
            "Subject: hi",
            ")",
            "* 2 FETCH (UID 8 FLAGS (\\Seen))",
            "a1 OK FETCH completed",
        )
        messages, _ = handler(SELECTED).fetch(["UID", "BODY[HEADER]"], "1:2")
        assert conn.sent == ["a1 FETCH 1:2 (UID BODY[HEADER])\r\n"]
        assert messages == [
            {"id": 1, "UID": "7", "BODY[HEADER]": "Subject: hi\r\n"},
            {"id": 2, "UID": "8", "FLAGS": ["\\Seen"]},
        ]

    def test_fetch_defaults(self, conn, handler):
        conn.feed("a1 OK done")
        messages, _ = handler(SELECTED).fetch(uid=True)
        assert conn.sent == ["a1 UID FETCH 1:* (UID BODY[HEADER.FIELDS (DATE FROM SUBJECT)])\r\n"]
        assert messages == []

    def test_fetch_requires_selected(self, conn, handler):
        with pytest.raises(IllegalStateTransition):
            handler(AUTH).fetch()
        assert conn.sent == []

    def test_store(self, conn, handler):
        conn.feed("* 2 FETCH (FLAGS (\\Deleted \\Seen))", "a1 OK STORE completed")
        messages, _ = handler(SELECTED).store("+", "\\Deleted", "2:4")
        assert conn.sent == ["a1 STORE 2:4 +FLAGS (\\Deleted)\r\n"]
        assert messages == [{"id": 2, "FLAGS": ["\\Deleted", "\\Seen"]}]

    def test_uid_store_silent_set(self, conn, handler):
        conn.feed("a1 OK done")
        handler(SELECTED).store("set", ["\\Seen", "\\Flagged"], "10", silent=True, uid=True)
        assert conn.sent == ["a1 UID STORE 10 FLAGS.SILENT (\\Seen \\Flagged)\r\n"]

    def test_store_bad_mode(self, conn, handler):
        with pytest.raises(ValueError):
            handler(SELECTED).store("toggle", "\\Seen", "1")
        assert conn.sent == []

    def test_expunge(self, conn, handler):
        conn.feed("* 3 EXPUNGE", "* 3 EXPUNGE", "* 5 EXPUNGE", "a1 OK EXPUNGE completed")
        ids, _ = handler(SELECTED).expunge()
        assert ids == [3, 3, 5]

    def test_copy_check_close(self, conn, handler):
        conn.feed("a1 OK done", "a2 OK done", "a3 OK done")
        h = handler(SELECTED)
        h.copy("2:4", "Meeting Notes")
        h.check()
        h.close()
        assert conn.sent == ['a1 COPY 2:4 "Meeting Notes"\r\n', "a2 CHECK\r\n", "a3 CLOSE\r\n"]
        assert h.session.current_state() == AUTH


class TestHistory:

    def test_successful_entries(self, conn, handler):
        conn.feed("* SEARCH 1", "a1 OK done")
        h = handler(SELECTED)
        h.search("ALL")
        entry = h.get_history()[0]
        assert entry["command"] == "SEARCH ALL"
        assert entry["parsed"] == [1]
        assert entry["raw"]["SEARCH"] == ["1"]
        assert not entry["error"]

    def test_clear_history(self, conn, handler):
        conn.feed("a1 OK done")
        h = handler()
        h.noop()
        h.clear_history()
        assert h.get_history() == []
