"""
Agent records as returned by the backend, normalized for display
"""

from typing import Any, Iterable, List, Optional

from pydantic import BaseModel


class AgentInfo(BaseModel):
    """An agent a microsub can be bound to"""
    id: str
    username: str
    name: str
    bonfire_id: Optional[str] = None
    is_active: bool = True

    @property
    def label(self) -> str:
        return self.name if self.is_active else f"{self.name} (inactive)"


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text or None


def normalize_agent(raw: Any, bonfire_id: Optional[str] = None) -> Optional[AgentInfo]:
    """
    Map a loose agent payload into an AgentInfo.

    Display name falls back name -> username -> id; username falls back
    username -> name -> id. Records without an id are rejected.
    """
    if not isinstance(raw, dict):
        return None

    agent_id = _text(raw.get("id"))
    if agent_id is None:
        return None

    name = _text(raw.get("name")) or _text(raw.get("username")) or agent_id
    username = _text(raw.get("username")) or _text(raw.get("name")) or agent_id
    is_active = raw.get("is_active")

    return AgentInfo(
        id=agent_id,
        username=username,
        name=name,
        bonfire_id=_text(raw.get("bonfire_id")) or _text(raw.get("bonfireId")) or bonfire_id,
        is_active=True if is_active is None else bool(is_active),
    )


def normalize_agents(items: Iterable[Any], bonfire_id: Optional[str] = None) -> List[AgentInfo]:
    agents = (normalize_agent(raw, bonfire_id) for raw in items or [])
    return [agent for agent in agents if agent is not None]
