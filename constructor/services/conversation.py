# constructor/services/conversation.py
"""
Turn-taking for a single chat node, as a pure function of (state, event).

    idle | success | error --SendRequested--> thinking
    thinking --CompletionSucceeded--> success
    thinking --CompletionFailed--> error
    any --ClearRequested--> idle (empty history)

`transition` never performs I/O. Sending yields a `RequestCompletion` effect
that the chat service executes; the outcome comes back as another event.
Every send and every clear bumps the node's generation, and completions
carrying an older generation are ignored, so a reply that lands after the
conversation was cleared cannot resurrect it.
"""
from typing import Union
from pydantic import BaseModel, Field
from constructor.models.graph import ChatNodeData, ContextSource, Message

NO_RESPONSE_TEXT = "No response generated."
DEFAULT_ERROR_TEXT = "Could not generate response."
ERROR_PREFIX = "Error: "


class SendRequested(BaseModel):
    query: str
    context_sources: list[ContextSource] = Field(default_factory=list)


class CompletionSucceeded(BaseModel):
    generation: int
    response_text: str | None
    source_count: int


class CompletionFailed(BaseModel):
    generation: int
    error_message: str | None = None


class ClearRequested(BaseModel):
    pass


ChatEvent = Union[SendRequested, CompletionSucceeded, CompletionFailed, ClearRequested]


class RequestCompletion(BaseModel):
    """Effect: ask the inference backend for the next model turn."""
    generation: int
    message: str
    history: list[Message]
    context_sources: list[ContextSource]
    system_instruction: str | None = None


ChatEffect = RequestCompletion


def can_send(state: ChatNodeData, query: str) -> bool:
    return state.status != "thinking" and bool(query.strip())


def transition(state: ChatNodeData, event: ChatEvent) -> tuple[ChatNodeData, list[ChatEffect]]:
    if isinstance(event, SendRequested):
        return _on_send(state, event)
    if isinstance(event, (CompletionSucceeded, CompletionFailed)):
        if state.status != "thinking" or event.generation != state.generation:
            return state, []
        if isinstance(event, CompletionSucceeded):
            return _on_success(state, event), []
        return _on_failure(state, event), []
    if isinstance(event, ClearRequested):
        return state.model_copy(
            update={"messages": [], "status": "idle", "generation": state.generation + 1}
        ), []
    raise TypeError(f"Unknown chat event: {type(event).__name__}")


def _on_send(state: ChatNodeData, event: SendRequested) -> tuple[ChatNodeData, list[ChatEffect]]:
    if not can_send(state, event.query):
        return state, []

    history = list(state.messages)
    generation = state.generation + 1
    next_state = state.model_copy(update={
        "status": "thinking",
        "messages": [*history, Message(role="user", text=event.query)],
        "user_input": "",
        "generation": generation,
    })
    effect = RequestCompletion(
        generation=generation,
        message=event.query,
        history=history,
        context_sources=event.context_sources,
        system_instruction=state.system_prompt or None,
    )
    return next_state, [effect]


def _on_success(state: ChatNodeData, event: CompletionSucceeded) -> ChatNodeData:
    reply = Message(role="model", text=event.response_text or NO_RESPONSE_TEXT)
    return state.model_copy(update={
        "status": "success",
        "messages": [*state.messages, reply],
        "source_count": event.source_count,
    })


def _on_failure(state: ChatNodeData, event: CompletionFailed) -> ChatNodeData:
    # Failures stay visible in the log as a model turn; further sends are allowed.
    reply = Message(role="model", text=ERROR_PREFIX + (event.error_message or DEFAULT_ERROR_TEXT))
    return state.model_copy(update={
        "status": "error",
        "messages": [*state.messages, reply],
    })
