"""
Prompt builders for content classification.
"""

import json

# Extracted text beyond this many characters is not sent to the model.
MAX_PROMPT_TEXT_CHARS = 9000


def build_system_prompt() -> str:
    """System instruction shared by every classification call."""
    return """You are an automatic file classification engine. From the given category list, pick the single best category for the file.

Return ONLY a JSON object with the keys: path, confidence, summary, tags, reason.

## Rules

- "path" MUST be one of the "rel_path" values in CATEGORIES. Never invent a new category.
- "confidence" is a number between 0 and 1.
- If you are not confident, use UNCATEGORIZED_REL_PATH as "path" and explain briefly in "reason".
- "summary" is at most 50 characters.
- "tags" is a list of 1 to 5 short nouns.
"""


def build_classify_prompt(request) -> str:
    """
    Build the user block for one file.

    Args:
        request: A ClassifyRequest.

    Returns:
        Prompt string for the LLM.
    """
    categories = [
        {
            "rel_path": c.rel_path,
            "display": c.display,
            "keywords": list(c.keywords),
            "ext_filter": c.ext_filter,
            "ai_hint": c.ai_hint,
        }
        for c in request.categories
    ]
    meta = request.file
    file_meta = {
        "name": meta.name,
        "ext": meta.ext,
        "full_path": meta.full_path,
        "mtime": meta.mtime.isoformat(),
        "size_bytes": meta.size_bytes,
    }

    text = (request.extracted_text or "")[:MAX_PROMPT_TEXT_CHARS]
    image_note = ""
    if request.image_bytes:
        image_note = "\n## Attached Image\nThe file's image is attached. Use it together with the text."
        if request.image_hint:
            image_note += f"\nImage details: {request.image_hint}"

    return f"""## UNCATEGORIZED_REL_PATH
{request.uncategorized_rel_path}

## CATEGORIES
{json.dumps(categories, ensure_ascii=False, indent=2)}

## FILE_META
{json.dumps(file_meta, ensure_ascii=False, indent=2)}

## EXTRACTED_TEXT
\"\"\"
{text}
\"\"\"
{image_note}

Choose the best category for this file. Output JSON only."""
