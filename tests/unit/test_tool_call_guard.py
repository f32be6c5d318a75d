from helena_agent.agent.guard import repair_tool_call, scan_for_embedded_tool_calls


def test_repair_accepts_valid_json() -> None:
    assert repair_tool_call('{"akte_id": "a1"}') == {"akte_id": "a1"}


def test_repair_trailing_comma_and_single_quotes() -> None:
    assert repair_tool_call("{'query': 'KSchG', 'limit': 3,}") == {"query": "KSchG", "limit": 3}


def test_repair_bare_keys() -> None:
    assert repair_tool_call('{query: "Kuendigung", limit: 2}') == {"query": "Kuendigung", "limit": 2}


def test_repair_empty_and_unrecoverable() -> None:
    assert repair_tool_call("") == {}
    assert repair_tool_call(None) is None
    assert repair_tool_call("not json at all") is None
    assert repair_tool_call("[1, 2]") is None


def test_scan_detects_tool_call_shaped_text() -> None:
    text = 'Ich rufe jetzt {"name": "read_akte", "arguments": {"akte_id": "a1"}} auf.'
    result = scan_for_embedded_tool_calls(text)

    assert result.detected
    assert result.tool_calls[0].name == "read_akte"
    assert result.tool_calls[0].arguments == {"akte_id": "a1"}


def test_scan_ignores_plain_answers() -> None:
    assert not scan_for_embedded_tool_calls("Die Frist endet am 12.03.2025.").detected
    assert not scan_for_embedded_tool_calls("kurz").detected
