# constructor/models/project.py
import time
from pydantic import BaseModel, Field
from constructor.models.graph import CanvasModel, Edge, Message, ContextSource, Node, NodeGraph, NodeType


def now_millis() -> int:
    return int(time.time() * 1000)


class Project(CanvasModel):
    id: str
    name: str
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    updated_at: int = Field(default_factory=now_millis)

    @property
    def graph(self) -> NodeGraph:
        return NodeGraph(nodes=self.nodes, edges=self.edges)

    def with_graph(self, graph: NodeGraph) -> "Project":
        return self.model_copy(update={"nodes": graph.nodes, "edges": graph.edges, "updated_at": now_millis()})


class ProjectSummary(CanvasModel):
    id: str
    name: str
    updated_at: int
    node_count: int
    edge_count: int

    @classmethod
    def from_project(cls, project: Project) -> "ProjectSummary":
        return cls(
            id=project.id,
            name=project.name,
            updated_at=project.updated_at,
            node_count=len(project.nodes),
            edge_count=len(project.edges),
        )


class WorkspaceSummary(CanvasModel):
    active_project_id: str
    projects: list[ProjectSummary]


class ProjectCreate(BaseModel):
    name: str | None = None


class ProjectUpdate(BaseModel):
    name: str


class NodeCreate(CanvasModel):
    id: str | None = None
    type: NodeType
    data: dict | None = None


class NodeDataUpdate(BaseModel):
    """Partial update of a node's data, keyed as the canvas keys it."""
    data: dict


class EdgeRef(BaseModel):
    source: str
    target: str


class ChatSendRequest(BaseModel):
    query: str | None = None


class ExtractRequest(BaseModel):
    url: str


class DriveFile(CanvasModel):
    title: str
    text: str
    url: str | None = None
    file_type: str | None = None


class ChatCompletionRequest(CanvasModel):
    message: str
    history: list[Message] = Field(default_factory=list)
    context_sources: list[ContextSource] = Field(default_factory=list)
    system_instruction: str | None = None


class ChatCompletionResponse(BaseModel):
    response: str
