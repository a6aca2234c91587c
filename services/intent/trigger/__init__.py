"""
Decision trigger -- decides when the assistant should open on its own.

Gate order: persona score -> recent activity count -> high-intent event.
High-intent detection is pluggable through trigger.intent.IntentMatcher.
"""
