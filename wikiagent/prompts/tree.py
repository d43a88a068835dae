"""Prompt and response template trees."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

from loguru import logger
from pydantic import BaseModel, Field

InsertPosition = Literal["before", "after", "relative", "absolute"]


class PromptNode(BaseModel):
    """A node of an agent's prompt template.

    Role-less nodes are folded into the nearest role-bearing (or top-level)
    ancestor when flattened; role-bearing nodes become their own message.
    """

    id: str
    caption: str = ""
    text: str | None = None
    role: Literal["system", "user", "assistant"] | None = None
    enabled: bool = True
    tags: list[str] = Field(default_factory=list)
    children: list[PromptNode] = Field(default_factory=list)


class ResponseNode(BaseModel):
    """A node of an agent's response template."""

    id: str
    caption: str = ""
    text: str = ""
    enabled: bool = True
    children: list[ResponseNode] = Field(default_factory=list)


NodeT = TypeVar("NodeT", PromptNode, ResponseNode)


@dataclass
class NodeLocation(Generic[NodeT]):
    """Where a node sits: the node, the list holding it and its index."""

    node: NodeT
    parent: list[NodeT]
    index: int


def find_node_by_id(nodes: list[NodeT], node_id: str) -> NodeLocation[NodeT] | None:
    """Depth-first search for ``node_id``; first match wins."""
    for index, node in enumerate(nodes):
        if node.id == node_id:
            return NodeLocation(node=node, parent=nodes, index=index)
        if node.children:
            found = find_node_by_id(node.children, node_id)
            if found:
                return found
    return None


def insert_node(nodes: list[NodeT], target_id: str, new_node: NodeT, position: str) -> bool:
    """
    Splice ``new_node`` next to or inside the node ``target_id``.

    ``before``/``after`` insert as a sibling, ``relative`` appends as the
    target's last child and ``absolute`` is treated as ``after``.

    Returns:
        False when the target does not exist; the tree is left unchanged.
    """
    location = find_node_by_id(nodes, target_id)
    if location is None:
        return False
    if position == "before":
        location.parent.insert(location.index, new_node)
    elif position == "relative":
        location.node.children.append(new_node)
    else:
        location.parent.insert(location.index + 1, new_node)
    return True


def _collect_text(node: PromptNode) -> str:
    text = node.text or ""
    for child in node.children:
        if child.enabled and not child.role:
            text += _collect_text(child)
    return text


def _role_descendants(children: list[PromptNode]) -> list[PromptNode]:
    out: list[PromptNode] = []
    for child in children:
        if not child.enabled:
            continue
        if child.role:
            out.append(child)
        if child.children:
            out.extend(_role_descendants(child.children))
    return out


def flatten_prompts(nodes: list[PromptNode]) -> list[dict[str, str]]:
    """
    Flatten a prompt tree into ordered ``{"role", "content"}`` messages.

    Traversal is depth-first and depends only on tree structure, so equal
    trees always flatten to equal output. Disabled nodes and their subtrees
    are skipped.
    """
    result: list[dict[str, str]] = []
    for node in nodes:
        if not node.enabled:
            logger.debug(f"Skipping disabled prompt {node.id}")
            continue

        content = _collect_text(node)
        if content.strip() or node.role:
            result.append({"role": node.role or "system", "content": content.strip()})

        for child in _role_descendants(node.children):
            child_content = _collect_text(child)
            result.append({"role": child.role or "system", "content": child_content.strip()})
    return result


def flatten_responses(nodes: list[ResponseNode]) -> str:
    """Join enabled leaf texts depth-first with blank lines between them."""
    parts: list[str] = []

    def _walk(items: list[ResponseNode]) -> None:
        for node in items:
            if not node.enabled:
                continue
            if node.children:
                _walk(node.children)
            elif node.text:
                parts.append(node.text)

    _walk(nodes)
    return "\n\n".join(parts).strip()
