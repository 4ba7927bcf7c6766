"""Agent core: loop, context, skills and subagents."""

from superbot.agent.context import ContextBuilder
from superbot.agent.loop import AgentLoop
from superbot.agent.skills import SkillsLoader
from superbot.agent.subagent import SubagentManager

__all__ = ["AgentLoop", "ContextBuilder", "SkillsLoader", "SubagentManager"]
