"""
Text extraction from heterogeneous upstream payloads.

Each rule is a (shape predicate, extractor) pair. Rules are tried in order;
the first rule whose predicate matches and whose extractor yields non-empty
text wins. Nothing matching yields "".
"""

from typing import Any, Callable, List, Tuple

ContentRule = Tuple[Callable[[Any], bool], Callable[[Any], str]]


def _first_choice(payload: Any) -> Any:
    choices = payload.get("choices") if isinstance(payload, dict) else None
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return None


def _first_candidate(payload: Any) -> Any:
    candidates = payload.get("candidates") if isinstance(payload, dict) else None
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return None


def _has_choice_field(name: str) -> Callable[[Any], bool]:
    def matches(payload: Any) -> bool:
        choice = _first_choice(payload)
        return choice is not None and isinstance(choice.get(name), dict)
    return matches


def _choice_content(name: str) -> Callable[[Any], str]:
    def extract(payload: Any) -> str:
        return _text(_first_choice(payload)[name].get("content"))
    return extract


def _has_choice_text(payload: Any) -> bool:
    choice = _first_choice(payload)
    return choice is not None and "text" in choice


def _choice_text(payload: Any) -> str:
    return _text(_first_choice(payload)["text"])


def _has_candidate(payload: Any) -> bool:
    return _first_candidate(payload) is not None


def _candidate_content(payload: Any) -> str:
    content = _first_candidate(payload).get("content")
    # Gemini nests text under content.parts[]; some producers send a flat string
    if isinstance(content, dict):
        return "".join(_text(p.get("text")) for p in content.get("parts", []) if isinstance(p, dict))
    return _text(content)


def _has_message(payload: Any) -> bool:
    return isinstance(payload, dict) and isinstance(payload.get("message"), dict)


def _message_content(payload: Any) -> str:
    return _text(payload["message"].get("content"))


def _has_response(payload: Any) -> bool:
    return isinstance(payload, dict) and "response" in payload


def _response_field(payload: Any) -> str:
    return _text(payload["response"])


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


# Incremental stream frames: OpenAI delta, Gemini candidate, native Ollama chunk
DELTA_RULES: List[ContentRule] = [
    (_has_choice_field("delta"), _choice_content("delta")),
    (_has_candidate, _candidate_content),
    (_has_message, _message_content),
    (_has_response, _response_field),
]

# Buffered bodies: OpenAI message, completion text, Gemini candidate, raw response
BODY_RULES: List[ContentRule] = [
    (_has_choice_field("message"), _choice_content("message")),
    (_has_choice_text, _choice_text),
    (_has_candidate, _candidate_content),
    (_has_response, _response_field),
]


def extract_text(payload: Any, rules: List[ContentRule]) -> str:
    """Apply ``rules`` in priority order."""
    for matches, extract in rules:
        if matches(payload):
            text = extract(payload)
            if text:
                return text
    return ""
