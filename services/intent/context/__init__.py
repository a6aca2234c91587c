"""
Context assembly for AI prompts.

No AI calls in this package -- text in, grounding text out. Everything
that leaves through ContextAssembler.assemble() is sanitized.
"""
