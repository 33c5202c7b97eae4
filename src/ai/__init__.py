from .prompts import PROMPTS, ChatPrompts, optimize_context_for_tokens

__all__ = ["PROMPTS", "ChatPrompts", "optimize_context_for_tokens"]
