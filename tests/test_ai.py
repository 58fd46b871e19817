import json

import httpx

from tronde.ai import build_generation_prompt, call_gemini, parse_generated_questions


def _gemini_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_prompt_mentions_counts_and_format():
    prompt = build_generation_prompt("Hàm số bậc hai", 10, mcq_count=4, msq_count=2, sa_count=1)
    assert "Toán lớp 10" in prompt
    assert "Hàm số bậc hai" in prompt
    assert '- 4 câu trắc nghiệm' in prompt
    assert '- 2 câu đúng - sai' in prompt
    assert '- 1 câu trả lời ngắn' in prompt
    assert '"questions"' in prompt


def test_missing_key_skips_the_request():
    def handler(request):
        raise AssertionError("no request expected")

    assert call_gemini("prompt", None, client=_client(handler)) == (None, "missing_gemini_api_key")


def test_successful_call_returns_text():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_gemini_reply('  {"questions": []}  '))

    text, err = call_gemini("Soạn câu hỏi", "secret-key", "gemini-test", client=_client(handler))

    assert (text, err) == ('{"questions": []}', None)
    assert "models/gemini-test:generateContent" in seen["url"]
    assert "key=secret-key" in seen["url"]
    assert seen["body"]["contents"][0]["parts"][0]["text"] == "Soạn câu hỏi"


def test_error_status_is_reported():
    def handler(request):
        return httpx.Response(403, json={"error": {"message": "API key not valid"}})

    text, err = call_gemini("prompt", "bad", client=_client(handler))
    assert text is None
    assert err == "403: API key not valid"


def test_unexpected_payload_is_reported():
    def handler(request):
        return httpx.Response(200, json={"candidates": []})

    text, err = call_gemini("prompt", "key", client=_client(handler))
    assert text is None
    assert err == "Không parse được phản hồi Gemini"


def test_connection_error_is_reported():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    text, err = call_gemini("prompt", "key", client=_client(handler))
    assert text is None
    assert err.startswith("Không kết nối được Gemini")


def test_parse_keeps_valid_questions():
    reply = """```json
{
  "questions": [
    {"type": "mcq", "question": "1 + 1 = ?", "option_a": "1", "option_b": "2",
     "option_c": "3", "option_d": "4", "correct_option": "b"},
    {"id": "mcq2", "type": "mcq", "question": "thiếu phương án", "option_a": "1",
     "correct_option": "A"},
    {"id": "sa1", "type": "sa", "question": "2 + 3 = ?", "correct_option": "5"},
    "not an object"
  ]
}
```"""
    questions, warnings = parse_generated_questions(reply)

    assert [q["id"] for q in questions] == ["ai-1", "sa1"]
    assert questions[0]["correct_option"] == "B"
    assert len(warnings) == 2
    assert "mcq2" in warnings[0]


def test_parse_without_json():
    questions, warnings = parse_generated_questions("Xin lỗi, tôi không thể giúp.")
    assert questions == []
    assert warnings == ["Không tìm thấy JSON trong phản hồi AI"]


def test_parse_without_question_list():
    questions, warnings = parse_generated_questions('{"items": []}')
    assert questions == []
    assert warnings == ["Phản hồi AI thiếu danh sách 'questions'"]


def test_parse_drops_items_without_a_stem():
    reply = json.dumps({
        "questions": [
            {"id": "sa1", "type": "sa", "correct_option": "5"},
            {"id": "sa2", "type": "sa", "question": "   ", "correct_option": "6"},
            {"id": "sa3", "type": "sa", "question": "2 + 5 = ?", "correct_option": 7},
        ]
    })
    questions, warnings = parse_generated_questions(reply)

    assert [q["id"] for q in questions] == ["sa3"]
    assert questions[0]["correct_option"] == "7"
    assert len(warnings) == 2
    assert all("Thiếu nội dung câu hỏi" in w for w in warnings)


def test_parse_joins_msq_answer_list():
    reply = json.dumps({
        "questions": [
            {"id": "msq1", "type": "msq", "question": "Mệnh đề nào đúng?", "option_a": "1 > 0",
             "option_b": "2 > 1", "option_c": "0 > 1", "option_d": "1 > 2", "correct_option": ["a", "B"]},
            {"id": "mcq1", "type": "mcq", "question": "1 + 1 = ?", "option_a": "1", "option_b": "2",
             "option_c": "3", "option_d": "4", "correct_option": ["B"]},
        ]
    })
    questions, warnings = parse_generated_questions(reply)

    assert [q["id"] for q in questions] == ["msq1"]
    assert questions[0]["correct_option"] == "A,B"
    assert warnings == ["Bỏ qua câu mcq1: Trường correct_option phải là chuỗi"]
