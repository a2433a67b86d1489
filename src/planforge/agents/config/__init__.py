from planforge.agents.config.agent_config import AgentState, EngineConfig

__all__ = ["AgentState", "EngineConfig"]
