"""
LLM model configurations.
"""

# Supported Gemini models with their full identifiers
GEMINI_MODELS = {
    "flash": "gemini-2.0-flash",           # Best for free tier (15 RPM)
    "flash-lite": "gemini-2.0-flash-lite", # Even faster/cheaper
    "pro": "gemini-2.5-pro",               # Best quality, limited free tier
}

# Default model for classification calls
DEFAULT_MODEL = "flash"

# Model-specific configuration. A classification answer is one small JSON
# object, so output is capped low.
MODEL_CONFIG = {
    "flash": {
        "max_output_tokens": 512,
        "temperature": 0.2,
    },
    "flash-lite": {
        "max_output_tokens": 512,
        "temperature": 0.2,
    },
    "pro": {
        "max_output_tokens": 1024,
        "temperature": 0.2,
    },
}


def resolve_model_id(model_name: str) -> str:
    """
    Map a short model name to a Gemini model id.

    Full ids (with or without a "models/" prefix) pass through unchanged
    apart from the prefix.
    """
    if model_name in GEMINI_MODELS:
        return GEMINI_MODELS[model_name]
    if model_name.startswith("models/"):
        return model_name[len("models/"):]
    return model_name or GEMINI_MODELS[DEFAULT_MODEL]


def get_model_config(model_name: str) -> dict:
    """
    Get configuration for a specific model.
    
    Args:
        model_name: Short model name (flash, flash-lite, pro).
        
    Returns:
        Configuration dict with max_output_tokens and temperature.
    """
    return MODEL_CONFIG.get(model_name, MODEL_CONFIG["flash"])
