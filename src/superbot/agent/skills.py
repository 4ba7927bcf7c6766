"""
Skills loader.

A skill is a directory holding a SKILL.md file with optional frontmatter:

    ---
    name: weather
    description: Look up forecasts
    always: false
    metadata: {"superbot": {"requires": {"bins": ["curl"], "env": ["API_KEY"]}}}
    ---

Workspace skills ({workspace}/skills) override built-in skills of the
same name.
"""

import json
import os
import re
import shutil
from pathlib import Path
from typing import Any
from xml.sax.saxutils import escape

BUILTIN_SKILLS_DIR = Path(__file__).resolve().parent.parent / "skills"

_FRONTMATTER = re.compile(r"^---\n(.*?)\n---\n?", re.DOTALL)


class SkillsLoader:
    """Discovers skills and renders them for the system prompt."""

    def __init__(self, workspace: Path, builtin_skills_dir: Path | None = BUILTIN_SKILLS_DIR):
        self.workspace = Path(workspace)
        self.workspace_skills = self.workspace / "skills"
        self.builtin_skills = builtin_skills_dir

    def list_skills(self, filter_unavailable: bool = True) -> list[dict[str, str]]:
        """
        List discovered skills as {name, path, source} dicts.

        Args:
            filter_unavailable: Drop skills whose requirements are not met.
        """
        skills: list[dict[str, str]] = []
        seen: set[str] = set()

        for source, root in (("workspace", self.workspace_skills), ("builtin", self.builtin_skills)):
            if root is None or not root.is_dir():
                continue
            for skill_dir in sorted(root.iterdir()):
                skill_file = skill_dir / "SKILL.md"
                if skill_dir.is_dir() and skill_file.exists() and skill_dir.name not in seen:
                    seen.add(skill_dir.name)
                    skills.append({"name": skill_dir.name, "path": str(skill_file), "source": source})

        if filter_unavailable:
            return [s for s in skills if self._check_requirements(self._get_skill_meta(s["name"]))]
        return skills

    def load_skill(self, name: str) -> str | None:
        """Raw SKILL.md content, workspace first."""
        for root in (self.workspace_skills, self.builtin_skills):
            if root is None:
                continue
            path = root / name / "SKILL.md"
            if path.exists():
                return path.read_text(encoding="utf-8", errors="replace")
        return None

    def load_skills_for_context(self, skill_names: list[str]) -> str:
        """Full skill bodies (frontmatter stripped) for the system prompt."""
        parts = []
        for name in skill_names:
            content = self.load_skill(name)
            if content:
                parts.append(f"### Skill: {name}\n\n{self._strip_frontmatter(content)}")
        return "\n\n---\n\n".join(parts)

    def build_skills_summary(self) -> str:
        """
        XML catalog of every skill, including unavailable ones.

        Unavailable skills carry available="false" and a <requires> list so
        the model can tell the user what to install.
        """
        all_skills = self.list_skills(filter_unavailable=False)
        if not all_skills:
            return ""

        lines = ["<skills>"]
        for s in all_skills:
            meta = self._get_skill_meta(s["name"])
            available = self._check_requirements(meta)
            lines.append(f'  <skill available="{str(available).lower()}">')
            lines.append(f"    <name>{escape(s['name'])}</name>")
            lines.append(f"    <description>{escape(self._get_skill_description(s['name']))}</description>")
            lines.append(f"    <location>{escape(s['path'])}</location>")
            if not available:
                missing = self._get_missing_requirements(meta)
                if missing:
                    lines.append(f"    <requires>{escape(missing)}</requires>")
            lines.append("  </skill>")
        lines.append("</skills>")
        return "\n".join(lines)

    def get_always_skills(self) -> list[str]:
        """Names of available skills flagged `always: true`."""
        result = []
        for s in self.list_skills(filter_unavailable=True):
            meta = self.get_skill_metadata(s["name"]) or {}
            if str(meta.get("always", "")).lower() == "true":
                result.append(s["name"])
        return result

    def get_skill_metadata(self, name: str) -> dict[str, str] | None:
        """Frontmatter key/value pairs, or None without frontmatter."""
        content = self.load_skill(name)
        if not content:
            return None
        match = _FRONTMATTER.match(content)
        if not match:
            return None

        metadata = {}
        for line in match.group(1).split("\n"):
            if ":" in line:
                key, value = line.split(":", 1)
                metadata[key.strip()] = value.strip().strip("\"'")
        return metadata

    @staticmethod
    def _strip_frontmatter(content: str) -> str:
        match = _FRONTMATTER.match(content)
        if match:
            return content[match.end():].strip()
        return content

    def _get_skill_description(self, name: str) -> str:
        meta = self.get_skill_metadata(name) or {}
        return meta.get("description") or name

    def _get_skill_meta(self, name: str) -> dict[str, Any]:
        """The `superbot` block of the JSON `metadata` frontmatter field."""
        meta = self.get_skill_metadata(name) or {}
        raw = meta.get("metadata")
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        if not isinstance(data, dict):
            return {}
        block = data.get("superbot")
        return block if isinstance(block, dict) else {}

    def _check_requirements(self, skill_meta: dict[str, Any]) -> bool:
        return not self._missing(skill_meta)

    def _get_missing_requirements(self, skill_meta: dict[str, Any]) -> str:
        return ", ".join(self._missing(skill_meta))

    @staticmethod
    def _missing(skill_meta: dict[str, Any]) -> list[str]:
        requires = skill_meta.get("requires")
        if not isinstance(requires, dict):
            return []
        bins = requires.get("bins") or []
        if isinstance(bins, str):
            bins = [bins]
        env = requires.get("env") or []
        if isinstance(env, str):
            env = [env]
        missing = [f"CLI: {b}" for b in bins if isinstance(b, str) and not shutil.which(b)]
        missing += [f"ENV: {e}" for e in env if isinstance(e, str) and not os.environ.get(e)]
        return missing
