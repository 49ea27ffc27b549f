"""Prompt loading and rendering utilities."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, FileSystemLoader, TemplateNotFound

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


@dataclass(frozen=True)
class PromptEntry:
    """Loaded prompt content and metadata."""

    content: str
    metadata: dict[str, Any]


@dataclass(frozen=True)
class PromptPair:
    """Rendered system and user prompts for one LLM call."""

    system_prompt: str
    user_prompt: str


class FrontMatterLoader(FileSystemLoader):
    """Jinja2 loader that strips YAML front matter."""

    def get_source(self, environment: Environment, template: str):  # type: ignore[override]
        source, filename, uptodate = super().get_source(environment, template)
        _, body = split_front_matter(source)
        return body, filename, uptodate


def split_front_matter(content: str) -> tuple[dict[str, Any], str]:
    if content.startswith("---"):
        parts = content.split("---", 2)
        if len(parts) == 3:
            return yaml.safe_load(parts[1]) or {}, parts[2].lstrip()
    return {}, content


class PromptLoader:
    """Load and render analysis prompt templates."""

    def __init__(self, prompts_dir: str | Path | None = None) -> None:
        path = Path(prompts_dir) if prompts_dir is not None else TEMPLATES_DIR
        self.prompts_dir = path if path.is_absolute() else TEMPLATES_DIR.parent / path
        self.cache: dict[str, PromptEntry] = {}
        self._env = Environment(
            loader=FrontMatterLoader(str(self.prompts_dir)),
            keep_trailing_newline=False,
        )

    def load(self, prompt_path: str, version: str = "latest") -> str:
        """
        Load prompt from file.

        Args:
            prompt_path: Relative path (e.g., "analysis/security.md")
            version: Specific version or "latest"

        Returns:
            Prompt content without front matter
        """
        cache_key = f"{prompt_path}:{version}"
        if cache_key in self.cache:
            return self.cache[cache_key].content

        file_path = self._resolve_path(prompt_path, version)
        if not file_path.exists():
            raise FileNotFoundError(f"Prompt not found: {file_path}")

        metadata, prompt_content = split_front_matter(file_path.read_text(encoding="utf-8"))
        self.cache[cache_key] = PromptEntry(content=prompt_content, metadata=metadata)
        return prompt_content

    def render(self, prompt_path: str, version: str = "latest", **variables: Any) -> str:
        """
        Load prompt and substitute variables using Jinja2.

        Example:
            prompt = loader.render(
                "analysis/performance.md",
                sql=sql,
                database_type="postgresql",
            )
        """
        return self._get_template(prompt_path, version).render(**variables)

    def build(
        self,
        template_name: str,
        variables: dict[str, Any],
        category: str | None = None,
        version: str = "latest",
    ) -> PromptPair:
        """
        Render a template into a system/user prompt pair.

        The system prompt comes from a ``{% block system %}`` when the template
        defines one, otherwise from the ``system`` front-matter key (itself
        rendered with ``variables``). The user prompt is the ``user`` block, or
        the whole template body.
        """
        prompt_path = self._prompt_path(template_name, category)
        template = self._get_template(prompt_path, version)

        if "system" in template.blocks:
            context = template.new_context(dict(variables))
            system_prompt = "".join(template.blocks["system"](context))
            if "user" in template.blocks:
                user_prompt = "".join(template.blocks["user"](template.new_context(dict(variables))))
            else:
                user_prompt = template.render(**variables).replace(system_prompt, "", 1)
        else:
            metadata = self.get_metadata(prompt_path, version=version)
            system_prompt = self._env.from_string(str(metadata.get("system", ""))).render(
                **variables
            )
            user_prompt = template.render(**variables)

        return PromptPair(system_prompt=system_prompt.strip(), user_prompt=user_prompt.strip())

    def get_metadata(self, prompt_path: str, version: str = "latest") -> dict[str, Any]:
        """Return metadata for a prompt (loads if needed)."""
        cache_key = f"{prompt_path}:{version}"
        if cache_key not in self.cache:
            self.load(prompt_path, version=version)
        return self.cache[cache_key].metadata

    def _get_template(self, prompt_path: str, version: str):
        template_path = self._template_path(prompt_path, version)
        try:
            return self._env.get_template(template_path)
        except TemplateNotFound as exc:
            raise FileNotFoundError(f"Prompt not found: {template_path}") from exc

    @staticmethod
    def _prompt_path(template_name: str, category: str | None) -> str:
        name = template_name if template_name.endswith(".md") else f"{template_name}.md"
        return f"{category}/{name}" if category else name

    def _resolve_path(self, prompt_path: str, version: str) -> Path:
        if version == "latest":
            return self.prompts_dir / prompt_path
        return self.prompts_dir / "versions" / version / prompt_path

    def _template_path(self, prompt_path: str, version: str) -> str:
        if version == "latest":
            return prompt_path
        return str(Path("versions") / version / prompt_path)
