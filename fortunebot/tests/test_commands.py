from fortunebot.features.webhook.commands import (
    Command,
    build_order_code_pattern,
    extract_order_code,
    match_command,
)


def test_commands_match_exact_keywords():
    assert match_command("リセット") == Command.RESET
    assert match_command(" /reset ") == Command.RESET
    assert match_command("RESET") == Command.RESET
    assert match_command("メニュー") == Command.MENU
    assert match_command("？") == Command.MENU
    assert match_command("Help") == Command.MENU
    assert match_command("プラン確認") == Command.STATUS
    assert match_command("/status") == Command.STATUS


def test_commands_do_not_match_inside_sentences():
    assert match_command("リセットしたい気分です") is None
    assert match_command("help me") is None


def test_order_codes_recognized():
    pattern = build_order_code_pattern()
    assert extract_order_code("ST999999", pattern) == "ST999999"
    assert extract_order_code("st12ab34cd", pattern) == "ST12AB34CD"
    assert extract_order_code("1234567890", pattern) == "1234567890"
    assert extract_order_code("#ST999999", pattern) == "ST999999"


def test_auth_keyword_prefix():
    pattern = build_order_code_pattern()
    assert extract_order_code("認証 ST999999", pattern) == "ST999999"
    assert extract_order_code("認証：ST999999", pattern) == "ST999999"
    assert extract_order_code("auth: 1234567890", pattern) == "1234567890"


def test_full_width_input_is_normalized():
    pattern = build_order_code_pattern()
    assert extract_order_code("ＳＴ９９９９９９", pattern) == "ST999999"
    assert extract_order_code("１２３４５６７８９０", pattern) == "1234567890"


def test_ordinary_text_is_not_an_order_code():
    pattern = build_order_code_pattern()
    for text in ("STRENGTH", "ST12", "123456789", "12345678901", "恋愛運を見て ST999999", "STATION"):
        assert extract_order_code(text, pattern) is None


def test_custom_prefix_and_length():
    pattern = build_order_code_pattern(prefix="OD", numeric_length=8)
    assert extract_order_code("OD123456", pattern) == "OD123456"
    assert extract_order_code("12345678", pattern) == "12345678"
    assert extract_order_code("ST999999", pattern) is None
