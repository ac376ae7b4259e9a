from constructor.models.graph import ChatNodeData, ContextSource, Message
from constructor.services.conversation import (
    ClearRequested,
    CompletionFailed,
    CompletionSucceeded,
    RequestCompletion,
    SendRequested,
    transition,
)

DOC = ContextSource(type="text", title="Doc", content="Q4 plan...")


def thinking_state():
    state = ChatNodeData(system_prompt="Analyst", user_input="Summarize")
    state, _ = transition(state, SendRequested(query="Summarize", context_sources=[DOC]))
    return state


def test_send_enters_thinking_and_emits_request():
    state = ChatNodeData(
        system_prompt="Analyst",
        user_input="Summarize",
        messages=[Message(role="user", text="earlier"), Message(role="model", text="reply")],
    )

    next_state, effects = transition(state, SendRequested(query="Summarize", context_sources=[DOC]))

    assert next_state.status == "thinking"
    assert next_state.user_input == ""
    assert next_state.messages[-1] == Message(role="user", text="Summarize")
    assert effects == [
        RequestCompletion(
            generation=next_state.generation,
            message="Summarize",
            history=state.messages,
            context_sources=[DOC],
            system_instruction="Analyst",
        )
    ]
    # the input state is left alone
    assert state.status == "idle"
    assert len(state.messages) == 2


def test_blank_query_is_rejected():
    state = ChatNodeData(user_input="   ")

    next_state, effects = transition(state, SendRequested(query="   "))

    assert next_state is state
    assert effects == []


def test_send_while_thinking_is_a_no_op():
    state = thinking_state()

    next_state, effects = transition(state, SendRequested(query="again"))

    assert next_state is state
    assert effects == []


def test_success_appends_model_turn_and_counts_sources():
    state = thinking_state()

    state, _ = transition(state, CompletionSucceeded(generation=state.generation, response_text="Done.", source_count=1))

    assert state.status == "success"
    assert [m.role for m in state.messages] == ["user", "model"]
    assert state.messages[-1].text == "Done."
    assert state.source_count == 1


def test_empty_response_gets_placeholder_text():
    state = thinking_state()

    state, _ = transition(state, CompletionSucceeded(generation=state.generation, response_text="", source_count=0))

    assert state.messages[-1].text == "No response generated."


def test_failure_is_recorded_as_model_turn_and_allows_retry():
    state = thinking_state()

    state, _ = transition(state, CompletionFailed(generation=state.generation, error_message="quota exceeded"))

    assert state.status == "error"
    assert state.messages[-1] == Message(role="model", text="Error: quota exceeded")

    state, effects = transition(state, SendRequested(query="retry"))
    assert state.status == "thinking"
    assert len(effects) == 1


def test_clear_resets_from_any_state():
    state = thinking_state()

    cleared, effects = transition(state, ClearRequested())

    assert cleared.status == "idle"
    assert cleared.messages == []
    assert effects == []


def test_reply_after_clear_is_discarded():
    state = thinking_state()
    generation = state.generation
    cleared, _ = transition(state, ClearRequested())

    after, _ = transition(cleared, CompletionSucceeded(generation=generation, response_text="late", source_count=1))

    assert after is cleared
    assert after.messages == []


def test_reply_for_older_send_is_discarded():
    state = thinking_state()
    stale = state.generation
    state, _ = transition(state, ClearRequested())
    state, _ = transition(state, SendRequested(query="new question"))

    after, _ = transition(state, CompletionFailed(generation=stale, error_message="boom"))

    assert after is state
    assert after.status == "thinking"
