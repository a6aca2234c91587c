# safety package -- outbound data sanitizer, per-visitor security score
from services.intent.safety.sanitizer import is_safe_for_ai, sanitize, sanitize_text

__all__ = [
    "is_safe_for_ai",
    "sanitize",
    "sanitize_text",
]
