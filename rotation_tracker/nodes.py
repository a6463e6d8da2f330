from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class NodeDescriptor:
    short_id: str
    host: str
    label: str


KNOWN_NODES: dict[str, NodeDescriptor] = {
    "i067": NodeDescriptor(short_id="i067", host="idt183067", label="IDT067"),
    "i068": NodeDescriptor(short_id="i068", host="idt183068", label="IDT068"),
    "i069": NodeDescriptor(short_id="i069", host="idt183069", label="IDT069"),
}


def resolve_node(short_id: str) -> NodeDescriptor:
    """
    Unknown ids get a synthesized descriptor so a new upstream node is still recorded.
    """
    key = str(short_id or "").strip().lower()
    known = KNOWN_NODES.get(key)
    if known is not None:
        return known
    return NodeDescriptor(short_id=key, host=f"unknown-{key}", label=key.upper())
