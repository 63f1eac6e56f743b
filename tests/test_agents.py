"""Tests for agent normalization."""

from delve_x402.agents import AgentInfo, normalize_agent, normalize_agents


class TestNormalizeAgent:

    def test_full_record(self):
        agent = normalize_agent({
            "id": "agent_1",
            "username": "delve_bot",
            "name": "Delve Bot",
            "bonfire_id": "bonfire_9",
            "is_active": True,
        })

        assert agent == AgentInfo(
            id="agent_1",
            username="delve_bot",
            name="Delve Bot",
            bonfire_id="bonfire_9",
            is_active=True,
        )
        assert agent.label == "Delve Bot"

    def test_name_falls_back_to_username_then_id(self):
        assert normalize_agent({"id": "a1", "username": "bot"}).name == "bot"
        assert normalize_agent({"id": "a1"}).name == "a1"

    def test_username_falls_back_to_name_then_id(self):
        assert normalize_agent({"id": "a1", "name": "Bot"}).username == "Bot"
        assert normalize_agent({"id": "a1", "username": ""}).username == "a1"

    def test_camel_case_bonfire_id_and_default(self):
        assert normalize_agent({"id": "a1", "bonfireId": "b2"}).bonfire_id == "b2"
        assert normalize_agent({"id": "a1"}, bonfire_id="b3").bonfire_id == "b3"

    def test_inactive_label(self):
        agent = normalize_agent({"id": "a1", "name": "Bot", "is_active": False})
        assert agent.is_active is False
        assert agent.label == "Bot (inactive)"

    def test_rejects_records_without_id(self):
        assert normalize_agent({"name": "ghost"}) is None
        assert normalize_agent("agent_1") is None


def test_normalize_agents_drops_bad_records():
    agents = normalize_agents([{"id": "a1"}, {"name": "ghost"}, None, {"id": 7}])

    assert [agent.id for agent in agents] == ["a1", "7"]
    assert normalize_agents(None) == []
