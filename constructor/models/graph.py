# constructor/models/graph.py
from enum import Enum
from typing import Annotated, Literal, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ExtractionStatus = Literal["idle", "loading", "success", "error"]
ChatStatus = Literal["idle", "thinking", "success", "error"]
Platform = Literal["youtube", "tiktok", "instagram", "web", "drive"]


class NodeType(str, Enum):
    VIDEO = "video"
    WEB = "web"
    TEXT = "text"
    CHAT = "chat"
    DRIVE = "drive"
    NOTE = "note"


class CanvasModel(BaseModel):
    """
    Base for everything the canvas persists. Keys are camelCase on the wire and
    unknown keys (position, style, handles...) are carried through untouched.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class Message(BaseModel):
    role: Literal["user", "model"]
    text: str


class ContextSource(BaseModel):
    """The uniform shape handed to the inference backend."""
    type: str
    title: str | None = None
    content: str


class SourceNodeData(CanvasModel):
    url: str | None = ""
    text: str | None = None
    status: ExtractionStatus = "idle"
    error_message: str | None = None
    platform: Platform | None = None
    title: str | None = None
    file_type: str | None = None
    generation: int = 0


class TextNodeData(CanvasModel):
    text: str = ""
    title: str = ""


class ChatNodeData(CanvasModel):
    system_prompt: str = ""
    user_input: str = ""
    messages: list[Message] = Field(default_factory=list)
    status: ChatStatus = "idle"
    source_count: int | None = None
    generation: int = 0


class _ExtractedSourceNode(CanvasModel):
    id: str
    data: SourceNodeData = Field(default_factory=SourceNodeData)

    def is_ready(self) -> bool:
        return self.data.status == "success" and bool(self.data.text)

    def to_context_source(self) -> ContextSource:
        return ContextSource(type=self.type, title=self.data.title or self.type, content=self.data.text or "")


class VideoNode(_ExtractedSourceNode):
    type: Literal["video"] = "video"


class WebNode(_ExtractedSourceNode):
    type: Literal["web"] = "web"


class DriveNode(_ExtractedSourceNode):
    type: Literal["drive"] = "drive"


class _AuthoredNode(CanvasModel):
    id: str
    data: TextNodeData = Field(default_factory=TextNodeData)

    def is_ready(self) -> bool:
        return bool(self.data.text)

    def to_context_source(self) -> ContextSource:
        return ContextSource(type=self.type, title=self.data.title or self.type, content=self.data.text)


class TextNode(_AuthoredNode):
    type: Literal["text"] = "text"


class NoteNode(_AuthoredNode):
    type: Literal["note"] = "note"


class ChatNode(CanvasModel):
    id: str
    type: Literal["chat"] = "chat"
    data: ChatNodeData = Field(default_factory=ChatNodeData)

    def is_ready(self) -> bool:
        return bool(self.data.messages)

    def to_context_source(self) -> ContextSource:
        # Flattens the whole conversation so chat nodes can feed each other.
        content = "\n".join(f"{message.role.upper()}: {message.text}" for message in self.data.messages)
        title = getattr(self.data, "title", None) or self.type
        return ContextSource(type=self.type, title=title, content=content)


Node = Annotated[
    Union[VideoNode, WebNode, DriveNode, TextNode, NoteNode, ChatNode],
    Field(discriminator="type"),
]
SourceNode = Union[VideoNode, WebNode, DriveNode]

# A source record is the snapshot of one upstream node as the graph reader sees it.
SourceRecord = Node

NODE_CLASSES: dict[NodeType, type[CanvasModel]] = {
    NodeType.VIDEO: VideoNode,
    NodeType.WEB: WebNode,
    NodeType.DRIVE: DriveNode,
    NodeType.TEXT: TextNode,
    NodeType.NOTE: NoteNode,
    NodeType.CHAT: ChatNode,
}

DEFAULT_TITLES = {
    NodeType.TEXT: "New Note",
    NodeType.NOTE: "Sticky Note",
}


def new_node(node_id: str, node_type: NodeType, data: dict | None = None):
    """Builds a node with the defaults the canvas gives a freshly dropped node."""
    payload = {"label": f"{node_type.value} Node"}
    if node_type in DEFAULT_TITLES:
        payload["title"] = DEFAULT_TITLES[node_type]
    payload.update(data or {})
    return NODE_CLASSES[node_type].model_validate({"id": node_id, "type": node_type.value, "data": payload})


class Edge(CanvasModel):
    id: str | None = None
    source: str
    target: str


class NodeGraph(BaseModel):
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)

    def get_node(self, node_id: str):
        return next((node for node in self.nodes if node.id == node_id), None)

    def has_node(self, node_id: str) -> bool:
        return self.get_node(node_id) is not None

    def with_node(self, node) -> "NodeGraph":
        """Returns a new graph with the node of the same id replaced."""
        return NodeGraph(
            nodes=[node if existing.id == node.id else existing for existing in self.nodes],
            edges=list(self.edges),
        )

    def with_added_node(self, node) -> "NodeGraph":
        return NodeGraph(nodes=[*self.nodes, node], edges=list(self.edges))

    def without_node(self, node_id: str) -> "NodeGraph":
        return NodeGraph(
            nodes=[node for node in self.nodes if node.id != node_id],
            edges=[edge for edge in self.edges if edge.source != node_id and edge.target != node_id],
        )

    def with_added_edge(self, edge: Edge) -> "NodeGraph":
        return NodeGraph(nodes=list(self.nodes), edges=[*self.edges, edge])

    def without_edge(self, source: str, target: str) -> "NodeGraph":
        return NodeGraph(
            nodes=list(self.nodes),
            edges=[edge for edge in self.edges if not (edge.source == source and edge.target == target)],
        )
