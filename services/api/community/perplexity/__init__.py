"""Structured-text provider: chat-completions client, prompts, parsing, formatting."""
