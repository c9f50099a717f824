"""
Gemini API client used by the classifier adapter.
"""

import json
import re
from typing import Any

import google.generativeai as genai

from .models import DEFAULT_MODEL, resolve_model_id, get_model_config


_configured_key: str | None = None


def configure_gemini(api_key: str) -> bool:
    """
    Configure the Gemini API client with an API key.

    Returns:
        True if a key was available, False otherwise.
    """
    global _configured_key
    if not api_key:
        return False
    if _configured_key != api_key:
        genai.configure(api_key=api_key)
        _configured_key = api_key
    return True


def call_llm(
    prompt: str,
    api_key: str,
    model_name: str = DEFAULT_MODEL,
    system_instruction: str | None = None,
    image_bytes: bytes | None = None,
    image_mime: str | None = None,
) -> str:
    """
    Call the Gemini LLM with a prompt and an optional inline image.

    Args:
        prompt: The user prompt text.
        api_key: Gemini API key.
        model_name: Short model name (flash, flash-lite, pro) or full id.
        system_instruction: Optional system prompt.
        image_bytes: Optional image attached as inline data.
        image_mime: MIME type of image_bytes.

    Returns:
        The raw response text from the LLM.

    Raises:
        RuntimeError: If no API key is configured.
    """
    if not configure_gemini(api_key):
        raise RuntimeError("GEMINI_API_KEY is not set")

    config = get_model_config(model_name)
    model = genai.GenerativeModel(
        resolve_model_id(model_name),
        system_instruction=system_instruction,
    )

    generation_config = genai.types.GenerationConfig(
        max_output_tokens=config["max_output_tokens"],
        temperature=config["temperature"],
        response_mime_type="application/json",
    )

    contents: list[Any] = [prompt]
    if image_bytes:
        contents.append({"mime_type": image_mime or "application/octet-stream", "data": image_bytes})

    response = model.generate_content(contents, generation_config=generation_config)
    return response.text


def parse_llm_json(response_text: str) -> dict[str, Any]:
    """
    Parse a JSON object from an LLM response.

    Handles markdown code fences, leading chatter and trailing text after
    the closing brace. Truncated objects are repaired when possible.

    Raises:
        json.JSONDecodeError: If no object can be recovered.
    """
    text = (response_text or "").strip()

    fenced = re.search(r'```(?:json)?\s*([\s\S]*?)```', text)
    if fenced:
        text = fenced.group(1).strip()

    first_brace = text.find('{')
    if first_brace > 0:
        text = text[first_brace:]

    last_brace = text.rfind('}')
    if last_brace != -1:
        text = text[:last_brace + 1]

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = _try_recover_truncated_json(text)

    if not isinstance(data, dict):
        raise json.JSONDecodeError("Expected a JSON object", text, 0)
    return data


def _try_recover_truncated_json(text: str) -> Any:
    """
    Close a JSON object that was cut off mid-stream.

    Drops a dangling string or partial key/value pair, then appends the
    closers for every still-open object/array in stack order.

    Raises:
        json.JSONDecodeError: If recovery fails completely.
    """
    if text.count('"') % 2 == 1:
        text = text[:text.rfind('"')]

    cut_point = max(text.rfind(','), text.rfind('{'), text.rfind('['))
    if cut_point >= 0:
        text = text[:cut_point] if text[cut_point] == ',' else text[:cut_point + 1]

    stack = []
    in_string = False
    is_escaped = False
    for char in text:
        if in_string:
            if is_escaped:
                is_escaped = False
            elif char == '\\':
                is_escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char in '{[':
            stack.append(char)
        elif char in '}]' and stack:
            stack.pop()

    closers = {'{': '}', '[': ']'}
    text += "".join(closers[c] for c in reversed(stack))
    return json.loads(text)
