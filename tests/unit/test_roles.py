from helena_agent.agent.roles import READ_TOOLS, WRITE_TOOLS, HelenaTool, UserRole, allowed_tools


def test_read_and_write_tools_partition_the_catalogue() -> None:
    assert READ_TOOLS | WRITE_TOOLS == set(HelenaTool)
    assert not READ_TOOLS & WRITE_TOOLS
    assert len(HelenaTool) == 18


def test_anwalt_and_admin_get_everything() -> None:
    assert allowed_tools(UserRole.ANWALT) == set(HelenaTool)
    assert allowed_tools("ADMIN") == set(HelenaTool)


def test_sachbearbeiter_cannot_reindex() -> None:
    tools = allowed_tools(UserRole.SACHBEARBEITER)

    assert HelenaTool.UPDATE_AKTE_RAG not in tools
    assert HelenaTool.CREATE_DRAFT_DOKUMENT in tools


def test_sekretariat_writes_only_notes() -> None:
    tools = allowed_tools(UserRole.SEKRETARIAT)

    assert tools & WRITE_TOOLS == {HelenaTool.CREATE_NOTIZ}


def test_unknown_role_is_read_only() -> None:
    assert allowed_tools("MANDANT") == READ_TOOLS
    assert allowed_tools(None) == READ_TOOLS
