# constructor/services/source_service.py
import logging
from constructor.core.exceptions import InvalidNodeTypeException, NodeNotFoundException
from constructor.models.graph import DriveNode, SourceNodeData, VideoNode, WebNode
from constructor.models.project import DriveFile
from constructor.services.extraction_client import ExtractionClient, ExtractionResult
from constructor.services.workspace_service import WorkspaceService

logger = logging.getLogger(__name__)


def begin_extraction(data: SourceNodeData, url: str) -> SourceNodeData:
    """Enters `loading`; text from an earlier extraction stays until it is replaced."""
    return data.model_copy(update={
        "status": "loading",
        "url": url,
        "error_message": None,
        "generation": data.generation + 1,
    })


def apply_extraction(data: SourceNodeData, result: ExtractionResult, generation: int) -> SourceNodeData:
    """
    Folds an extraction result into the node. Results for an older request
    (the URL was resubmitted meanwhile) leave the node untouched.
    """
    if data.status != "loading" or data.generation != generation:
        return data
    if result.status == "success":
        return data.model_copy(update={
            "status": "success",
            "text": result.text,
            "title": result.title,
            "platform": result.platform,
            "url": result.url or data.url,
            "error_message": None,
        })
    return data.model_copy(update={
        "status": "error",
        "text": None,
        "title": None,
        "error_message": result.error_message or "Failed to extract content",
    })


class SourceService:
    def __init__(self, workspace_service: WorkspaceService, extraction_client: ExtractionClient):
        self.workspace_service = workspace_service
        self.extraction_client = extraction_client

    async def extract(self, user_id: str, node_id: str, url: str):
        """Fetches content for a video or web node and waits for the result."""
        node = await self.workspace_service.get_node(user_id, node_id)
        if not isinstance(node, (VideoNode, WebNode)):
            raise InvalidNodeTypeException(f"Node '{node_id}' is a {node.type} node; only video and web nodes fetch URLs.")
        if not url:
            return node

        project = await self.workspace_service.get_project(user_id)
        loading = begin_extraction(node.data, url)
        await self.workspace_service.update_node(
            user_id, node_id, lambda n: n.model_copy(update={"data": loading}), project_id=project.id
        )

        result = await self.extraction_client.extract(url)

        def _settle(current):
            settled = apply_extraction(current.data, result, loading.generation)
            if settled is current.data:
                logger.info(
                    "Discarding stale extraction result for node %s", node_id,
                    extra={"user_id": user_id, "project_id": project.id, "node_id": node_id, "generation": loading.generation},
                )
                return current
            return current.model_copy(update={"data": settled})

        updated = await self.workspace_service.update_node(user_id, node_id, _settle, project_id=project.id)
        if updated is None:
            raise NodeNotFoundException(f"Node '{node_id}' was removed while its content was loading.")
        return updated

    async def attach_drive_file(self, user_id: str, node_id: str, drive_file: DriveFile) -> DriveNode:
        """Stores a file picked from Google Drive on a drive node."""
        node = await self.workspace_service.get_node(user_id, node_id)
        if not isinstance(node, DriveNode):
            raise InvalidNodeTypeException(f"Node '{node_id}' is a {node.type} node, not a drive node.")

        data = node.data.model_copy(update={
            "status": "success",
            "platform": "drive",
            "title": drive_file.title,
            "text": drive_file.text,
            "url": drive_file.url,
            "file_type": drive_file.file_type,
            "error_message": None,
            "generation": node.data.generation + 1,
        })
        return await self.workspace_service.update_node(
            user_id, node_id, lambda n: n.model_copy(update={"data": data})
        )
