# constructor/services/chat_service.py
import logging
from constructor.core.exceptions import InvalidNodeTypeException
from constructor.models.graph import ChatNode, ContextSource
from constructor.services.ai_service import AIService
from constructor.services.context_service import build_context
from constructor.services.conversation import (
    ChatEvent,
    ClearRequested,
    CompletionFailed,
    CompletionSucceeded,
    RequestCompletion,
    SendRequested,
    transition,
)
from constructor.services.workspace_service import WorkspaceService

logger = logging.getLogger(__name__)


class ChatService:
    """
    Runs the conversation state machine against the live graph: reads the
    context, applies transitions to the node and executes the completion effect.
    """

    def __init__(self, workspace_service: WorkspaceService, ai_service: AIService):
        self.workspace_service = workspace_service
        self.ai_service = ai_service

    async def get_context(self, user_id: str, node_id: str) -> list[ContextSource]:
        node = await self.workspace_service.get_node(user_id, node_id)
        project = await self.workspace_service.get_project(user_id)
        return build_context(project.graph, node.id)

    async def send(self, user_id: str, node_id: str, query: str | None = None) -> tuple[ChatNode, bool]:
        """
        Sends `query` (the node's pending user input by default) and waits for the reply.
        Returns the node as it stands afterwards and whether the send was accepted;
        a send while the node is thinking, or with a blank query, changes nothing.
        """
        node = self._require_chat_node(await self.workspace_service.get_node(user_id, node_id))
        project = await self.workspace_service.get_project(user_id)
        message = node.data.user_input if query is None else query

        context_sources = build_context(project.graph, node_id)
        next_data, effects = transition(node.data, SendRequested(query=message, context_sources=context_sources))
        if not effects:
            logger.info(
                "Ignoring send for chat node %s (status=%s)", node_id, node.data.status,
                extra={"user_id": user_id, "project_id": project.id, "node_id": node_id},
            )
            return node, False

        current = await self.workspace_service.update_node(
            user_id, node_id, lambda n: n.model_copy(update={"data": next_data}), project_id=project.id
        )
        for effect in effects:
            outcome = await self._request_completion(effect)
            current = await self._apply(user_id, project.id, node_id, outcome) or current
        return current, True

    async def clear(self, user_id: str, node_id: str) -> ChatNode:
        self._require_chat_node(await self.workspace_service.get_node(user_id, node_id))
        project = await self.workspace_service.get_project(user_id)
        return await self._apply(user_id, project.id, node_id, ClearRequested())

    async def _request_completion(self, effect: RequestCompletion) -> ChatEvent:
        try:
            response_text = await self.ai_service.generate_chat_response(
                effect.message,
                effect.history,
                effect.context_sources,
                effect.system_instruction,
            )
        except Exception as exc:
            logger.warning("Chat completion failed: %s", exc, extra={"generation": effect.generation})
            return CompletionFailed(generation=effect.generation, error_message=str(exc) or None)
        return CompletionSucceeded(
            generation=effect.generation,
            response_text=response_text,
            source_count=len(effect.context_sources),
        )

    async def _apply(self, user_id: str, project_id: str, node_id: str, event: ChatEvent) -> ChatNode | None:
        """Folds an event into the node's latest state, in the project the conversation lives in."""
        def _transition(node):
            if not isinstance(node, ChatNode):
                return node
            next_data, _ = transition(node.data, event)
            if next_data is node.data:
                logger.info(
                    "Discarding stale chat event for node %s", node_id,
                    extra={"user_id": user_id, "project_id": project_id, "node_id": node_id, "generation": node.data.generation},
                )
                return node
            return node.model_copy(update={"data": next_data})

        updated = await self.workspace_service.update_node(user_id, node_id, _transition, project_id=project_id)
        if updated is None:
            logger.info(
                "Chat node %s disappeared before its reply arrived", node_id,
                extra={"user_id": user_id, "project_id": project_id, "node_id": node_id},
            )
        return updated

    @staticmethod
    def _require_chat_node(node) -> ChatNode:
        if not isinstance(node, ChatNode):
            raise InvalidNodeTypeException(f"Node '{node.id}' is a {node.type} node, not a chat node.")
        return node
