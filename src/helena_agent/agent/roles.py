"""Static role -> tool capability table."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from helena_agent.agent.registry import ToolSpec


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    ANWALT = "ANWALT"
    SACHBEARBEITER = "SACHBEARBEITER"
    SEKRETARIAT = "SEKRETARIAT"


class HelenaTool(str, Enum):
    """Closed set of tools the agent may be offered."""

    READ_AKTE = "read_akte"
    READ_AKTE_DETAIL = "read_akte_detail"
    READ_DOKUMENTE = "read_dokumente"
    READ_DOKUMENTE_DETAIL = "read_dokumente_detail"
    READ_FRISTEN = "read_fristen"
    READ_ZEITERFASSUNG = "read_zeiterfassung"
    SEARCH_GESETZE = "search_gesetze"
    SEARCH_URTEILE = "search_urteile"
    SEARCH_MUSTER = "search_muster"
    GET_KOSTEN_RULES = "get_kosten_rules"
    SEARCH_ALLE_AKTEN = "search_alle_akten"
    SEARCH_WEB = "search_web"
    CREATE_DRAFT_DOKUMENT = "create_draft_dokument"
    CREATE_DRAFT_FRIST = "create_draft_frist"
    CREATE_NOTIZ = "create_notiz"
    CREATE_ALERT = "create_alert"
    UPDATE_AKTE_RAG = "update_akte_rag"
    CREATE_DRAFT_ZEITERFASSUNG = "create_draft_zeiterfassung"


READ_TOOLS: frozenset[HelenaTool] = frozenset(
    {
        HelenaTool.READ_AKTE,
        HelenaTool.READ_AKTE_DETAIL,
        HelenaTool.READ_DOKUMENTE,
        HelenaTool.READ_DOKUMENTE_DETAIL,
        HelenaTool.READ_FRISTEN,
        HelenaTool.READ_ZEITERFASSUNG,
        HelenaTool.SEARCH_GESETZE,
        HelenaTool.SEARCH_URTEILE,
        HelenaTool.SEARCH_MUSTER,
        HelenaTool.GET_KOSTEN_RULES,
        HelenaTool.SEARCH_ALLE_AKTEN,
        HelenaTool.SEARCH_WEB,
    }
)
WRITE_TOOLS: frozenset[HelenaTool] = frozenset(set(HelenaTool) - READ_TOOLS)

ROLE_CAPABILITIES: dict[UserRole, frozenset[HelenaTool]] = {
    UserRole.ADMIN: READ_TOOLS | WRITE_TOOLS,
    UserRole.ANWALT: READ_TOOLS | WRITE_TOOLS,
    UserRole.SACHBEARBEITER: READ_TOOLS | (WRITE_TOOLS - {HelenaTool.UPDATE_AKTE_RAG}),
    UserRole.SEKRETARIAT: READ_TOOLS | {HelenaTool.CREATE_NOTIZ},
}


def allowed_tools(role: UserRole | str | None) -> frozenset[HelenaTool]:
    """Capability set for `role`; unknown roles are read-only."""
    try:
        resolved = UserRole(role) if role is not None else None
    except ValueError:
        resolved = None
    if resolved is None:
        return READ_TOOLS
    return ROLE_CAPABILITIES[resolved]


def filter_tools(specs: Iterable["ToolSpec"], role: UserRole | str | None) -> list["ToolSpec"]:
    permitted = {tool.value for tool in allowed_tools(role)}
    return [spec for spec in specs if spec.name in permitted]
