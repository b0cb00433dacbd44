from __future__ import annotations

import asyncio
import json

from src.models.content import ParseStatus
from src.services.ai_service import AIService, parse_candidate_payload, recover_candidates_from_lines

from tests.fakes import fake_gemini_client

VALID = json.dumps({"events": [
    {"year": "1947", "title": "Independence of India", "note": "End of British rule"},
    {"year": 1969, "title": "Apollo 11 lands on the Moon"},
]})


def test_parse_strict_json():
    candidates = parse_candidate_payload(VALID)
    assert [c.title for c in candidates] == ["Independence of India", "Apollo 11 lands on the Moon"]
    assert [c.rank for c in candidates] == [1, 2]
    assert candidates[1].year == "1969"
    assert candidates[1].note == ""


def test_parse_fenced_and_prefixed_json():
    assert len(parse_candidate_payload(f"```json\n{VALID}\n```")) == 2
    assert len(parse_candidate_payload(f"Sure, here is the list: {VALID}")) == 2


def test_parse_rejects_non_event_payloads():
    assert parse_candidate_payload("") is None
    assert parse_candidate_payload("no json here") is None
    assert parse_candidate_payload('{"items": []}') is None
    assert parse_candidate_payload('{"events": "nope"}') is None


def test_parse_caps_and_keeps_provider_ranks():
    many = json.dumps({"events": [{"title": f"Item {i}", "year": "1900"} for i in range(40)]})
    assert len(parse_candidate_payload(many)) == 36

    gappy = json.dumps({"events": [{"title": ""}, "junk", {"title": "Kept", "year": 1900}]})
    candidates = parse_candidate_payload(gappy)
    assert len(candidates) == 1
    assert candidates[0].rank == 3
    assert candidates[0].year == "1900"


def test_line_recovery_of_markdown_lists():
    text = "\n".join([
        "Here are some events:",
        "**1947** – Indian independence: End of British rule",
        "- 1969 Apollo 11: Moon landing",
        "Birthday of Amitabh Bachchan: actor",
    ])
    recovered = recover_candidates_from_lines(text)

    assert [(c.year, c.title, c.note) for c in recovered] == [
        ("1947", "Indian independence", "End of British rule"),
        ("1969", "Apollo 11", "Moon landing"),
        ("", "Birthday of Amitabh Bachchan", "actor"),
    ]
    assert [c.rank for c in recovered] == [1, 2, 3]


def test_line_recovery_of_title_only_lines():
    recovered = recover_candidates_from_lines("1947 - Independence of India")
    assert len(recovered) == 1
    assert recovered[0].year == "1947"
    assert recovered[0].title == "Independence of India"
    assert recovered[0].note == ""


def _service(responses) -> AIService:
    return AIService(api_key="test-key", client=fake_gemini_client(responses))


def test_generate_candidates_parses_first_response():
    service = _service([VALID])
    result = asyncio.run(service.generate_candidates("August 15", "08", "15"))

    assert result.status is ParseStatus.PARSED
    assert len(result.candidates) == 2
    prompt = service.client.aio.models.prompts[0]
    assert "August 15 (08-15)" in prompt
    assert "Include global items too" in prompt


def test_regional_prompt_is_used_for_regional_candidates():
    service = _service([VALID])
    asyncio.run(service.generate_candidates("August 15", "08", "15", regional=True))
    assert "India-related" in service.client.aio.models.prompts[0]


def test_generate_candidates_retries_with_schema_prompt():
    service = _service(["I cannot produce JSON today.", VALID])
    result = asyncio.run(service.generate_candidates("August 15", "08", "15"))

    assert result.status is ParseStatus.PARSED
    prompts = service.client.aio.models.prompts
    assert len(prompts) == 2
    assert prompts[1] == service.prompts["schema_hint"]


def test_generate_candidates_falls_back_to_line_recovery():
    service = _service(["1947 - Independence of India: freedom", "still not json"])
    result = asyncio.run(service.generate_candidates("August 15", "08", "15"))

    assert result.status is ParseStatus.RECOVERED
    assert result.candidates[0].title == "Independence of India"


def test_generate_candidates_never_raises():
    service = _service([RuntimeError("quota exceeded"), RuntimeError("quota exceeded")])
    result = asyncio.run(service.generate_candidates("August 15", "08", "15"))
    assert result.status is ParseStatus.EMPTY
    assert result.candidates == ()


def test_provider_is_disabled_without_a_key():
    service = AIService(api_key="")
    assert not service.enabled
    result = asyncio.run(service.generate_candidates("August 15", "08", "15"))
    assert result.status is ParseStatus.EMPTY
