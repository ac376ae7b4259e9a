# constructor/core/prompts.py
# This file is the single source of truth for all AI prompt engineering.
from constructor.models.graph import ContextSource

CHAT_SYSTEM_PROMPT = """
You are an AI assistant in a node-based workflow app.
Use the provided CONTEXT SOURCES to answer the user's query.

{role_instruction}

CONTEXT SOURCES:
{context_block}
""".strip()

ROLE_INSTRUCTION = "USER DEFINED ROLE/INSTRUCTION: {instruction}"

SOURCE_SEPARATOR = "-" * 34


def format_context_block(context_sources: list[ContextSource]) -> str:
    sections = []
    for index, source in enumerate(context_sources, start=1):
        header = f"--- SOURCE {index} ({source.type.upper()}: {source.title or 'Untitled'}) ---"
        sections.append(f"{header}\n{source.content}\n{SOURCE_SEPARATOR}")
    return "\n\n".join(sections)


def build_system_instruction(context_sources: list[ContextSource], user_instruction: str | None = None) -> str:
    """
    The context goes into the system instruction rather than the history so the model
    always sees the latest node contents, however long the conversation gets.
    """
    role_instruction = ROLE_INSTRUCTION.format(instruction=user_instruction) if user_instruction else ""
    return CHAT_SYSTEM_PROMPT.format(
        role_instruction=role_instruction,
        context_block=format_context_block(context_sources),
    )
