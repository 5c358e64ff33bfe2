"""
Tool call text parser.

Models without native function calling write tool calls into their reply,
either as XML (<read_file><path>a.txt</path></read_file>) or as a JSON
object ({"name": ..., "arguments": {...}}). This module extracts those
calls, strips them from the displayed text and recognises common
malformed variants so the model can be told how to fix them.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field

from steward.messages import ToolCall

logger = logging.getLogger(__name__)

NATIVE_FORMAT_HINT = (
    "Please use the native tool calling format provided by the system. "
    "The tools are already available to you - call them directly using the "
    "function calling interface."
)

JSON_FORMAT_EXAMPLES = """Correct format:
{
  "name": "tool_name",
  "arguments": {
    "param": "value"
  }
}"""

# (pattern, error) pairs checked before any parsing
MALFORMED_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (
        re.compile(r"\[(?:tool_use|Tool):\s*(\w+)\]", re.IGNORECASE),
        "Invalid syntax: [tool_use: name] or [Tool: name] format is not supported",
    ),
    (
        re.compile(r"<function=(\w+)>"),
        "Invalid syntax: <function=name> is not supported",
    ),
    (
        re.compile(r"<parameter=(\w+)>"),
        "Invalid syntax: <parameter=name> is not supported",
    ),
]

HTML_TAGS = frozenset(
    {
        "div", "span", "p", "a", "ul", "ol", "li", "table", "tr", "td", "th",
        "thead", "tbody", "h1", "h2", "h3", "h4", "h5", "h6", "br", "hr",
        "strong", "em", "code", "pre", "blockquote", "img", "section",
        "article", "header", "footer", "nav", "aside",
    }
)

XML_CALL_RE = re.compile(r"<(\w+)>(.*?)</\1>", re.DOTALL)
XML_PARAM_RE = re.compile(r"<(\w+)>(.*?)</\1>", re.DOTALL)
NESTED_TAG_RE = re.compile(r"<\w+>")
ATTRIBUTE_TAG_RE = re.compile(r"<\w+=")
TOOL_CALL_WRAPPER_RE = re.compile(r"</?tool_call>")
CODE_BLOCK_RE = re.compile(r"```(?:\w+)?\s*\n?([\s\S]*?)\n?```")
WHOLE_CODE_BLOCK_RE = re.compile(r"^```(?:json)?\s*\n?([\s\S]*?)\n?```$")
EMPTY_CODE_BLOCK_RE = re.compile(r"```(?:\w+)?\s*```")

THINK_BLOCK_RE = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
THINK_CLOSE_RE = re.compile(r"</think>", re.IGNORECASE)
THINK_OPEN_TAIL_RE = re.compile(r"<think>[\s\S]*$", re.IGNORECASE)


@dataclass
class ParseResult:
    """Outcome of scanning assistant text for tool calls."""

    success: bool
    tool_calls: list[ToolCall] = field(default_factory=list)
    cleaned_content: str = ""
    error: str = ""
    examples: str = ""


def strip_think_tags(content: str) -> str:
    """Remove chain-of-thought blocks, including an unterminated trailing one."""
    content = THINK_BLOCK_RE.sub("", content)
    content = THINK_CLOSE_RE.sub("", content)
    return THINK_OPEN_TAIL_RE.sub("", content)


def detect_malformed_tool_call(content: str) -> tuple[str, str] | None:
    """Return (error, examples) for known-bad tool call syntax, else None."""
    for pattern, error in MALFORMED_PATTERNS:
        if pattern.search(content):
            return error, NATIVE_FORMAT_HINT
    return None


def _tidy(content: str) -> str:
    content = re.sub(r"[ \t]+$", "", content, flags=re.MULTILINE)
    content = re.sub(r"([^ \t\n]) {2,}", r"\1 ", content)
    content = re.sub(r"\n{3,}", "\n\n", content)
    return content.strip()


def _new_id(prefix: str, index: int) -> str:
    return f"{prefix}_{index}_{uuid.uuid4().hex[:8]}"


def _deduplicate(calls: list[ToolCall]) -> list[ToolCall]:
    seen: set[str] = set()
    unique = []
    for call in calls:
        signature = call.signature()
        if signature not in seen:
            seen.add(signature)
            unique.append(call)
    return unique


# =============================================================================
# XML
# =============================================================================


def _is_xml_tool_call(full_match: str, tool_name: str, inner: str) -> bool:
    if tool_name == "tool_call" or tool_name.lower() in HTML_TAGS:
        return False
    if ATTRIBUTE_TAG_RE.search(full_match):
        return False
    # Bare tags like <path>x</path> are parameters, not calls
    return bool(NESTED_TAG_RE.search(inner)) or "_" in tool_name


def _parse_xml_value(raw: str) -> object:
    value = raw.strip()
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def parse_xml_tool_calls(content: str) -> list[ToolCall]:
    """Extract <tool_name><param>value</param></tool_name> calls."""
    text = TOOL_CALL_WRAPPER_RE.sub("", content)
    calls = []
    for match in XML_CALL_RE.finditer(text):
        tool_name, inner = match.group(1), match.group(2)
        if not _is_xml_tool_call(match.group(0), tool_name, inner):
            continue
        arguments = {
            param.group(1): _parse_xml_value(param.group(2))
            for param in XML_PARAM_RE.finditer(inner)
        }
        calls.append(ToolCall(id=_new_id("xml_call", len(calls)), name=tool_name, arguments=arguments))
    return calls


def remove_xml_tool_calls(content: str) -> str:
    """Strip valid XML tool calls (and code fences holding them) from text."""

    def drop_valid(match: re.Match[str]) -> str:
        if _is_xml_tool_call(match.group(0), match.group(1), match.group(2)):
            return ""
        return match.group(0)

    def drop_block(match: re.Match[str]) -> str:
        return "" if parse_xml_tool_calls(match.group(1) or "") else match.group(0)

    cleaned = CODE_BLOCK_RE.sub(drop_block, content)
    # Unwrap first: a <tool_call> match would otherwise swallow the call inside it
    cleaned = TOOL_CALL_WRAPPER_RE.sub("", cleaned)
    cleaned = XML_CALL_RE.sub(drop_valid, cleaned)
    return _tidy(cleaned)


# =============================================================================
# JSON
# =============================================================================


def _unwrap_code_block(content: str) -> str:
    trimmed = content.strip()
    match = WHOLE_CODE_BLOCK_RE.match(trimmed)
    return match.group(1).strip() if match else trimmed


def detect_malformed_json_tool_call(content: str) -> str | None:
    """
    Check a reply that is a single JSON object for an incomplete tool call.

    Plain JSON without "name" or "arguments" is left alone.
    """
    trimmed = _unwrap_code_block(content)
    if not (trimmed.startswith("{") and trimmed.endswith("}")):
        return None
    try:
        data = json.loads(trimmed)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or ("name" not in data and "arguments" not in data):
        return None

    if "name" not in data or not data.get("name"):
        return 'Invalid tool call: missing "name" field'
    if "arguments" not in data:
        return 'Invalid tool call: missing "arguments" field'
    if not isinstance(data["arguments"], dict):
        return 'Invalid tool call: "arguments" must be an object'
    return None


def _scan_json_objects(content: str) -> list[tuple[int, int, dict]]:
    """Find top-level JSON objects shaped like tool calls, with their spans."""
    decoder = json.JSONDecoder()
    found = []
    index = content.find("{")
    while index != -1:
        try:
            data, end = decoder.raw_decode(content, index)
        except json.JSONDecodeError:
            index = content.find("{", index + 1)
            continue
        if (
            isinstance(data, dict)
            and isinstance(data.get("name"), str)
            and data["name"]
            and isinstance(data.get("arguments"), dict)
        ):
            found.append((index, end, data))
            index = content.find("{", end)
        else:
            index = content.find("{", index + 1)
    return found


def parse_json_tool_calls(content: str) -> tuple[list[ToolCall], str]:
    """
    Extract {"name": ..., "arguments": {...}} calls.

    Returns:
        The calls and the content with those objects removed
    """
    spans = _scan_json_objects(content)
    if not spans:
        return [], content.strip()

    calls = []
    pieces = []
    cursor = 0
    for start, end, data in spans:
        calls.append(
            ToolCall(id=_new_id("call", len(calls)), name=data["name"], arguments=data["arguments"])
        )
        pieces.append(content[cursor:start])
        cursor = end
    pieces.append(content[cursor:])

    cleaned = EMPTY_CODE_BLOCK_RE.sub("", "".join(pieces))
    return calls, _tidy(cleaned)


# =============================================================================
# Entry point
# =============================================================================


def parse_tool_calls(content: str) -> ParseResult:
    """
    Parse tool calls out of assistant text.

    Order: think tags are stripped, malformed syntax is reported, XML calls
    win over JSON calls when both are present, and identical calls are
    collapsed to one.
    """
    if not content or not content.strip():
        return ParseResult(success=True, cleaned_content="")

    text = strip_think_tags(content)

    malformed = detect_malformed_tool_call(text)
    if malformed:
        error, examples = malformed
        logger.debug(f"Malformed tool call syntax: {error}")
        return ParseResult(success=False, cleaned_content=text.strip(), error=error, examples=examples)

    xml_calls = parse_xml_tool_calls(text)
    if xml_calls:
        return ParseResult(
            success=True,
            tool_calls=_deduplicate(xml_calls),
            cleaned_content=remove_xml_tool_calls(text),
        )

    json_error = detect_malformed_json_tool_call(text)
    if json_error:
        logger.debug(f"Malformed JSON tool call: {json_error}")
        return ParseResult(
            success=False,
            cleaned_content=text.strip(),
            error=json_error,
            examples=JSON_FORMAT_EXAMPLES,
        )

    json_calls, cleaned = parse_json_tool_calls(text)
    return ParseResult(success=True, tool_calls=_deduplicate(json_calls), cleaned_content=cleaned)
