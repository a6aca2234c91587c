"""
Generative assistant turn: prompt building, the Gemini REST client,
response validation, offline fallbacks and the orchestrating engine.

Public API:
    from services.intent.inference.engine import InferenceEngine
    from services.intent.inference.client import GeminiClient, AIResult
"""
