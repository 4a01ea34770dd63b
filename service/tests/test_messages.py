"""
Tests for gateway envelope normalization.
"""

import json

import pytest

from app.whatsapp_bot.bot import extract_messages
from app.whatsapp_bot.messages import (
    MENU_DIVIDER,
    InteractiveReply,
    extract_interactive_reply,
    extract_text,
    format_menu,
    jid_from_phone,
    normalize_jid,
    parse_envelope,
    phone_from_jid,
)


class TestExtractText:
    """Tests for extract_text function."""

    def test_conversation(self):
        assert extract_text({"conversation": "hola"}) == "hola"

    def test_extended_text(self):
        assert extract_text({"extendedTextMessage": {"text": "mira esto"}}) == "mira esto"

    def test_captions(self):
        assert extract_text({"imageMessage": {"caption": "foto"}}) == "foto"
        assert extract_text({"videoMessage": {"caption": "video"}}) == "video"
        assert extract_text({"documentMessage": {"caption": "doc"}}) == "doc"

    def test_document_with_caption(self):
        message = {"documentWithCaptionMessage": {"message": {"documentMessage": {"caption": "factura"}}}}
        assert extract_text(message) == "factura"

    def test_ephemeral_and_view_once_wrappers(self):
        assert extract_text({"ephemeralMessage": {"message": {"conversation": "secreto"}}}) == "secreto"
        nested = {"viewOnceMessageV2": {"message": {"ephemeralMessage": {"message": {
            "imageMessage": {"caption": "una vez"}}}}}}
        assert extract_text(nested) == "una vez"

    def test_priority_conversation_first(self):
        message = {"conversation": "a", "extendedTextMessage": {"text": "b"}}
        assert extract_text(message) == "a"

    @pytest.mark.parametrize("message", [None, "texto", 42, {}, {"audioMessage": {"seconds": 3}},
                                         {"conversation": None}, {"extendedTextMessage": "raro"}])
    def test_malformed_is_empty(self, message):
        assert extract_text(message) == ""


class TestExtractInteractiveReply:
    """Tests for extract_interactive_reply function."""

    def test_native_flow(self):
        message = {"interactiveResponseMessage": {"nativeFlowResponseMessage": {
            "name": "quick_reply",
            "paramsJson": json.dumps({"id": "cat_2", "display_text": "Transporte"}),
        }}}
        assert extract_interactive_reply(message) == InteractiveReply(id="cat_2", text="Transporte")

    def test_native_flow_bad_json_uses_name(self):
        message = {"interactiveResponseMessage": {"nativeFlowResponseMessage": {
            "name": "bot_groq", "paramsJson": "{oops"}}}
        assert extract_interactive_reply(message) == InteractiveReply(id="bot_groq")

    def test_buttons_response(self):
        message = {"buttonsResponseMessage": {"selectedButtonId": "bot_gastos",
                                              "selectedDisplayText": "Control de gastos"}}
        assert extract_interactive_reply(message) == InteractiveReply(id="bot_gastos", text="Control de gastos")

    def test_list_response(self):
        message = {"listResponseMessage": {"title": "Educación",
                                           "singleSelectReply": {"selectedRowId": "cat_5"}}}
        assert extract_interactive_reply(message) == InteractiveReply(id="cat_5", text="Educación")

    def test_plain_text_has_none(self):
        assert extract_interactive_reply({"conversation": "1"}) is None
        assert extract_interactive_reply(None) is None


class TestParseEnvelope:
    """Tests for parse_envelope function."""

    def test_full_envelope(self):
        envelope = {
            "key": {"remoteJid": "573001112233@s.whatsapp.net", "fromMe": False, "id": "ABC123"},
            "pushName": "Ana",
            "message": {"conversation": "  Almuerzo 25k  "},
        }
        message = parse_envelope(envelope)
        assert message.chat_id == "573001112233@s.whatsapp.net"
        assert message.text == "Almuerzo 25k"
        assert message.message_id == "ABC123"
        assert message.push_name == "Ana"
        assert message.from_me is False
        assert message.interactive is None
        assert not message.is_group

    def test_group_and_broadcast(self):
        group = parse_envelope({"key": {"remoteJid": "120363@g.us"}, "message": {"conversation": "x"}})
        status = parse_envelope({"key": {"remoteJid": "status@broadcast"}, "message": {"conversation": "x"}})
        assert group.is_group
        assert status.is_broadcast

    @pytest.mark.parametrize("envelope", [
        None,
        [],
        {},
        {"key": {}, "message": {"conversation": "x"}},
        {"key": {"remoteJid": "573001112233@s.whatsapp.net"}},
        {"key": {"remoteJid": "573001112233@s.whatsapp.net"}, "message": "x"},
    ])
    def test_unusable_envelopes(self, envelope):
        assert parse_envelope(envelope) is None


class TestExtractMessages:
    """Webhook bodies: single envelope or batch."""

    def test_single_envelope(self):
        payload = {"key": {"remoteJid": "573001112233@s.whatsapp.net"}, "message": {"conversation": "hola"}}
        assert [m.text for m in extract_messages(payload)] == ["hola"]

    def test_batch_skips_unusable(self):
        payload = {"messages": [
            {"key": {"remoteJid": "573001112233@s.whatsapp.net"}, "message": {"conversation": "uno"}},
            {"key": {}},
            {"key": {"remoteJid": "573001112233@s.whatsapp.net"}, "message": {"conversation": "dos"}},
        ]}
        assert [m.text for m in extract_messages(payload)] == ["uno", "dos"]


class TestJids:
    """Jid helpers."""

    def test_normalize_drops_device_suffix(self):
        assert normalize_jid("573001234567:12@s.whatsapp.net") == "573001234567@s.whatsapp.net"
        assert normalize_jid("573001234567@s.whatsapp.net") == "573001234567@s.whatsapp.net"
        assert normalize_jid(None) == ""

    def test_phone_round_trip(self):
        assert jid_from_phone("+57 300 123 4567") == "573001234567@s.whatsapp.net"
        assert phone_from_jid("573001234567:3@s.whatsapp.net") == "573001234567"
        assert jid_from_phone("") == ""


class TestFormatMenu:
    """Tests for format_menu function."""

    def test_numbered_options_and_footer(self):
        text = format_menu("Elige", [{"id": "a", "text": "Uno", "desc": "primero"}, {"id": "b", "text": "Dos"}],
                           footer="Responde con el número")
        assert text.startswith(f"Elige\n{MENU_DIVIDER}")
        assert "*[ 1 ]* Uno\n      _primero_" in text
        assert "*[ 2 ]* Dos" in text
        assert text.endswith("_Responde con el número_")
