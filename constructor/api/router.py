# constructor/api/router.py
from fastapi import APIRouter, Depends, status, HTTPException, Response, Header, Request
from pydantic import ValidationError
from constructor.core.config import settings
from constructor.core.limiter import limiter
from constructor.core.redis_client import get_redis_client
from constructor.db.repositories.project_repository import ProjectRepository
from constructor.models.graph import ContextSource, Edge, Node, NodeGraph
from constructor.models.project import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatSendRequest,
    DriveFile,
    EdgeRef,
    ExtractRequest,
    NodeCreate,
    NodeDataUpdate,
    Project,
    ProjectCreate,
    ProjectUpdate,
    WorkspaceSummary,
)
from constructor.services.ai_service import AIService
from constructor.services.chat_service import ChatService
from constructor.services.extraction_client import ExtractionClient
from constructor.services.source_service import SourceService
from constructor.services.workspace_service import WorkspaceService

router = APIRouter()

_workspace_service: WorkspaceService | None = None
_ai_service: AIService | None = None


# Dependency to extract the User ID from a header
def get_user_id(x_user_id: str = Header(..., description="Client-generated unique ID for the user workspace.")) -> str:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-User-ID header is required.")
    return x_user_id

def get_workspace_service() -> WorkspaceService:
    # One instance per process: it holds the live graphs and their pending saves.
    global _workspace_service
    if _workspace_service is None:
        _workspace_service = WorkspaceService(
            ProjectRepository(get_redis_client()),
            save_delay=settings.SAVE_DEBOUNCE_SECONDS,
        )
    return _workspace_service

def get_ai_service() -> AIService:
    global _ai_service
    if _ai_service is None:
        _ai_service = AIService(api_key=settings.GEMINI_API_KEY, model=settings.GEMINI_MODEL)
    return _ai_service

def get_extraction_client() -> ExtractionClient:
    return ExtractionClient(
        base_url=settings.EXTRACTOR_API_URL,
        token=settings.EXTRACTOR_API_TOKEN,
        timeout=settings.EXTRACTION_TIMEOUT_SECONDS,
    )

def get_chat_service(
    workspace_service: WorkspaceService = Depends(get_workspace_service),
    ai_service: AIService = Depends(get_ai_service)
) -> ChatService:
    return ChatService(workspace_service, ai_service)

def get_source_service(
    workspace_service: WorkspaceService = Depends(get_workspace_service),
    extraction_client: ExtractionClient = Depends(get_extraction_client)
) -> SourceService:
    return SourceService(workspace_service, extraction_client)

async def shutdown_services() -> None:
    if _workspace_service is not None:
        await _workspace_service.flush()

# --- Workspace & projects ---

@router.get("/workspace", response_model=WorkspaceSummary, tags=["Projects"])
async def get_workspace(
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    return await service.get_summary(user_id)

@router.post("/projects", status_code=status.HTTP_201_CREATED, response_model=Project, tags=["Projects"])
@limiter.limit("30/minute")
async def create_project(
    request: Request,
    project_data: ProjectCreate,
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    """Creates an empty project and makes it the active one."""
    return await service.create_project(user_id, project_data.name)

@router.get("/projects/{project_id}", response_model=Project, tags=["Projects"])
async def get_project(
    project_id: str,
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    return await service.get_project(user_id, project_id)

@router.patch("/projects/{project_id}", response_model=Project, tags=["Projects"])
@limiter.limit("60/minute")
async def rename_project(
    request: Request,
    project_id: str,
    project_update: ProjectUpdate,
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    return await service.rename_project(user_id, project_id, project_update.name)

@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Projects"])
@limiter.limit("30/minute")
async def delete_project(
    request: Request,
    project_id: str,
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    if not await service.delete_project(user_id, project_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="The last project of a workspace cannot be deleted.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.post("/projects/{project_id}/activate", response_model=Project, tags=["Projects"])
async def activate_project(
    project_id: str,
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    return await service.set_active_project(user_id, project_id)

# --- Graph of the active project ---

@router.get("/graph", response_model=NodeGraph, tags=["Graph"])
async def get_graph(
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    return (await service.get_project(user_id)).graph

@router.put("/graph", response_model=NodeGraph, tags=["Graph"])
@limiter.limit("240/minute")
async def replace_graph(
    request: Request,
    graph: NodeGraph,
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    """Replaces the whole graph, as the canvas does after every edit. Saved after a quiet period."""
    return (await service.replace_graph(user_id, graph)).graph

@router.post("/nodes", status_code=status.HTTP_201_CREATED, response_model=Node, tags=["Nodes"])
@limiter.limit("60/minute")
async def add_node(
    request: Request,
    node_data: NodeCreate,
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    try:
        return await service.add_node(user_id, node_data.type, node_data.data, node_id=node_data.id)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.errors(include_url=False, include_context=False))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

@router.get("/nodes/{node_id}", response_model=Node, tags=["Nodes"])
async def get_node(
    node_id: str,
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    return await service.get_node(user_id, node_id)

@router.patch("/nodes/{node_id}", response_model=Node, tags=["Nodes"])
@limiter.limit("600/minute")
async def update_node(
    request: Request,
    node_id: str,
    node_update: NodeDataUpdate,
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    try:
        return await service.update_node_data(user_id, node_id, node_update.data)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.errors(include_url=False, include_context=False))

@router.delete("/nodes/{node_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Nodes"])
@limiter.limit("60/minute")
async def delete_node(
    request: Request,
    node_id: str,
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    if not await service.delete_node(user_id, node_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Node not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.post("/edges", status_code=status.HTTP_201_CREATED, response_model=Edge, tags=["Edges"])
@limiter.limit("120/minute")
async def add_edge(
    request: Request,
    edge: Edge,
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    return await service.add_edge(user_id, edge)

@router.delete("/edges", status_code=status.HTTP_204_NO_CONTENT, tags=["Edges"])
@limiter.limit("120/minute")
async def delete_edge(
    request: Request,
    edge: EdgeRef,
    user_id: str = Depends(get_user_id),
    service: WorkspaceService = Depends(get_workspace_service)
):
    if not await service.delete_edge(user_id, edge.source, edge.target):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Edge not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# --- Chat nodes ---

@router.get("/nodes/{node_id}/context", response_model=list[ContextSource], tags=["Chat"])
async def get_node_context(
    node_id: str,
    user_id: str = Depends(get_user_id),
    chat_service: ChatService = Depends(get_chat_service)
):
    """The context sources a chat node would send right now."""
    return await chat_service.get_context(user_id, node_id)

@router.post("/nodes/{node_id}/chat", response_model=Node, tags=["Chat"])
@limiter.limit("15/minute")
async def send_chat(
    request: Request,
    node_id: str,
    chat_request: ChatSendRequest,
    user_id: str = Depends(get_user_id),
    chat_service: ChatService = Depends(get_chat_service)
):
    node, accepted = await chat_service.send(user_id, node_id, chat_request.query)
    if not accepted:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Chat node is still thinking or the message is empty."
        )
    return node

@router.post("/nodes/{node_id}/chat/clear", response_model=Node, tags=["Chat"])
async def clear_chat(
    node_id: str,
    user_id: str = Depends(get_user_id),
    chat_service: ChatService = Depends(get_chat_service)
):
    return await chat_service.clear(user_id, node_id)

@router.post("/api/chat/completions", response_model=ChatCompletionResponse, tags=["Chat"])
@limiter.limit("15/minute")
async def chat_completions(
    request: Request,
    completion_request: ChatCompletionRequest,
    ai_service: AIService = Depends(get_ai_service)
):
    """Stateless completion over caller-supplied history and context."""
    try:
        response_text = await ai_service.generate_chat_response(
            completion_request.message,
            completion_request.history,
            completion_request.context_sources,
            completion_request.system_instruction,
        )
    except Exception as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc) or "Could not generate response.")
    return ChatCompletionResponse(response=response_text)

# --- Source nodes ---

@router.post("/nodes/{node_id}/extract", response_model=Node, tags=["Sources"])
@limiter.limit("20/minute")
async def extract_source(
    request: Request,
    node_id: str,
    extract_request: ExtractRequest,
    user_id: str = Depends(get_user_id),
    source_service: SourceService = Depends(get_source_service)
):
    """Fetches a transcript or page text for the node; failures land in the node's status."""
    return await source_service.extract(user_id, node_id, extract_request.url.strip())

@router.post("/nodes/{node_id}/drive-file", response_model=Node, tags=["Sources"])
@limiter.limit("20/minute")
async def attach_drive_file(
    request: Request,
    node_id: str,
    drive_file: DriveFile,
    user_id: str = Depends(get_user_id),
    source_service: SourceService = Depends(get_source_service)
):
    return await source_service.attach_drive_file(user_id, node_id, drive_file)
