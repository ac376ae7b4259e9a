import pytest

from constructor.models.graph import (
    ChatNode,
    DriveNode,
    Edge,
    NodeGraph,
    NoteNode,
    TextNode,
    VideoNode,
    WebNode,
)
from constructor.services.context_service import (
    assemble_context,
    build_context,
    filter_ready,
    get_upstream_sources,
    is_ready,
)


def text_node(node_id, text="Q4 plan...", title="Doc"):
    return TextNode(id=node_id, data={"text": text, "title": title})


def chat_node(node_id, messages=None):
    return ChatNode(id=node_id, data={"messages": messages or []})


def graph_of(nodes, edges):
    return NodeGraph(nodes=nodes, edges=[Edge(source=s, target=t) for s, t in edges])


def test_upstream_sources_follow_edge_order_not_node_order():
    graph = graph_of(
        [text_node("a"), text_node("b"), text_node("c"), chat_node("chat1")],
        [("c", "chat1"), ("a", "chat1"), ("b", "other")],
    )

    upstream = get_upstream_sources(graph, "chat1")

    assert [node.id for node in upstream] == ["c", "a"]


def test_upstream_sources_are_single_hop():
    graph = graph_of(
        [text_node("src"), chat_node("middle"), chat_node("end")],
        [("src", "middle"), ("middle", "end")],
    )

    assert [node.id for node in get_upstream_sources(graph, "end")] == ["middle"]


def test_dangling_edge_is_skipped_without_error():
    graph = graph_of([chat_node("chat1")], [("ghost", "chat1")])

    assert get_upstream_sources(graph, "chat1") == []


def test_duplicate_edges_do_not_duplicate_sources():
    graph = graph_of([text_node("a"), chat_node("chat1")], [("a", "chat1"), ("a", "chat1")])

    assert [node.id for node in get_upstream_sources(graph, "chat1")] == ["a"]
    assert len(graph.edges) == 2


def test_cycle_between_chat_nodes_reads_one_hop_only():
    graph = graph_of(
        [chat_node("x", [{"role": "user", "text": "hi"}]), chat_node("y")],
        [("x", "y"), ("y", "x")],
    )

    assert [node.id for node in get_upstream_sources(graph, "y")] == ["x"]
    assert [node.id for node in get_upstream_sources(graph, "x")] == ["y"]


@pytest.mark.parametrize("node_cls", [VideoNode, WebNode, DriveNode])
@pytest.mark.parametrize(
    "status, text, expected",
    [
        ("success", "transcript", True),
        ("success", "", False),
        ("success", None, False),
        ("loading", "old transcript", False),
        ("error", "text", False),
        ("idle", None, False),
    ],
)
def test_extracted_sources_need_success_and_text(node_cls, status, text, expected):
    node = node_cls(id="n", data={"status": status, "text": text})
    assert is_ready(node) is expected


@pytest.mark.parametrize("node_cls", [TextNode, NoteNode])
def test_authored_sources_are_ready_when_text_is_present(node_cls):
    assert is_ready(node_cls(id="n", data={"text": "notes", "title": ""}))
    assert not is_ready(node_cls(id="n", data={"text": "", "title": "Empty"}))


def test_chat_source_is_ready_once_it_has_messages():
    assert not is_ready(chat_node("c"))
    assert is_ready(chat_node("c", [{"role": "user", "text": "hi"}]))


def test_chat_conversation_is_flattened_into_one_block():
    upstream = chat_node("c", [{"role": "user", "text": "hi"}, {"role": "model", "text": "hello"}])

    [source] = assemble_context([upstream])

    assert source.type == "chat"
    assert source.title == "chat"
    assert source.content == "USER: hi\nMODEL: hello"


def test_title_falls_back_to_node_type():
    web = WebNode(id="w", data={"status": "success", "text": "page", "title": None})
    text = text_node("t", title="")

    sources = assemble_context([web, text])

    assert [(s.type, s.title, s.content) for s in sources] == [
        ("web", "web", "page"),
        ("text", "text", "Q4 plan..."),
    ]


def test_assemble_context_is_pure():
    records = [text_node("a"), chat_node("c", [{"role": "model", "text": "ok"}])]

    assert assemble_context(records) == assemble_context(records)


def test_build_context_drops_unready_sources_and_keeps_order():
    graph = graph_of(
        [
            VideoNode(id="v", data={"status": "loading", "url": "https://youtu.be/x"}),
            text_node("t1", text="first", title="One"),
            NoteNode(id="n", data={"text": "", "title": "Blank"}),
            WebNode(id="w", data={"status": "success", "text": "article", "title": "Blog"}),
            text_node("t2", text="second", title="One"),
            chat_node("chat1"),
        ],
        [("v", "chat1"), ("t1", "chat1"), ("n", "chat1"), ("w", "chat1"), ("t2", "chat1")],
    )

    sources = build_context(graph, "chat1")

    assert [(s.type, s.title, s.content) for s in sources] == [
        ("text", "One", "first"),
        ("web", "Blog", "article"),
        ("text", "One", "second"),
    ]


def test_filter_ready_excludes_entirely():
    records = [text_node("a", text=""), text_node("b")]

    assert [r.id for r in filter_ready(records)] == ["b"]
