"""Jinja2-based prompt template loader for the synthesis agent.

This service loads prompt templates from the enzyme/prompts/ directory and renders
them with context variables. Templates are reloaded on every call so prompts can be
edited without restarting the server.

Inline fallback prompts cover the synthesis templates when the prompts directory
is missing (e.g. an installed wheel without data files).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import jinja2

from .errors import EnzymeError

logger = logging.getLogger(__name__)

# enzyme/src/services/prompt_loader.py -> enzyme/prompts/
DEFAULT_PROMPTS_DIR = Path(__file__).resolve().parent.parent.parent / "prompts"

INLINE_PROMPTS: Dict[str, str] = {
    "synthesis/system.md": """You are an analytical sounding board who helps the user delve into notes they have taken, synthesizing ideas for them to explore further.

%markers% may appear after the text that you draw insights from. Use them to show where your insights came from.

Your task is to synthesize these notes using Markdown.

## Further rules

{{ instructions }}

Here are a series of note titles, each followed by the note contents in a ```codefence```. At the end, there is user guidance for the synthesis.
""",
    "synthesis/instructions.md": """Relate note excerpts to each other. Limit your response to {{ word_limit or 800 }} words.
Alternate between your synthesis and the %markers% found in the notes, at most 2 together, never repeating one.
Only use %markers% that exist in the text. Markers are NOT [[links]] or #tags.
""",
    "synthesis/sources.md": """{% for item in contents -%}
## {{ item.file }}
Last modified: {{ item.last_modified_date }}

```
{{ item.contents }}
```

{% endfor -%}
## Guidance

{{ guidance or 'Summarize the main ideas in these notes.' }}
""",
}


class PromptLoaderError(EnzymeError):
    """Raised when a prompt cannot be loaded."""

    pass


class PromptLoader:
    """Load and render Jinja2 prompt templates.

    Example:
        >>> loader = PromptLoader()
        >>> system_prompt = loader.load("synthesis/system.md", {"instructions": "..."})
    """

    def __init__(self, prompts_dir: Optional[Path] = None) -> None:
        self.prompts_dir = prompts_dir or DEFAULT_PROMPTS_DIR

        if self.prompts_dir.is_dir():
            self.env = jinja2.Environment(
                loader=jinja2.FileSystemLoader(str(self.prompts_dir)),
                autoescape=False,  # Prompts are markdown, not HTML
                auto_reload=True,
                keep_trailing_newline=True,
            )
            logger.debug(
                "PromptLoader initialized with filesystem templates",
                extra={"prompts_dir": str(self.prompts_dir)},
            )
        else:
            self.env = None
            logger.warning(
                "Prompts directory not found, using inline fallbacks",
                extra={"prompts_dir": str(self.prompts_dir)},
            )

    def load(self, path: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Load and render a prompt template.

        Args:
            path: Relative path to the template file (e.g., "synthesis/system.md").
            context: Dictionary of variables to render into the template.

        Returns:
            The rendered prompt string.

        Raises:
            PromptLoaderError: If the template cannot be loaded or rendered.
        """
        context = context or {}

        if self.env is not None:
            try:
                template = self.env.get_template(path)
                rendered = template.render(**context)
                logger.debug(
                    "Loaded prompt from filesystem",
                    extra={"path": path, "context_keys": list(context.keys())},
                )
                return rendered
            except jinja2.TemplateNotFound:
                logger.debug(
                    "Template not found in filesystem, trying inline fallback",
                    extra={"path": path},
                )
            except jinja2.TemplateError as e:
                logger.error(
                    "Failed to render template",
                    extra={"path": path, "error": str(e)},
                )
                raise PromptLoaderError(f"Failed to render template {path}: {e}") from e

        return self._get_inline_prompt(path, context)

    def _get_inline_prompt(self, path: str, context: Dict[str, Any]) -> str:
        template_str = INLINE_PROMPTS.get(path)

        if template_str is None:
            logger.warning(
                "No inline fallback for prompt path",
                extra={"path": path, "available": list(INLINE_PROMPTS.keys())},
            )
            raise PromptLoaderError(
                f"Prompt not found: {path}. "
                f"Available inline prompts: {list(INLINE_PROMPTS.keys())}"
            )

        try:
            rendered = jinja2.Template(template_str).render(**context)
            logger.debug(
                "Loaded inline fallback prompt",
                extra={"path": path, "context_keys": list(context.keys())},
            )
            return rendered
        except jinja2.TemplateError as e:
            logger.error(
                "Failed to render inline template",
                extra={"path": path, "error": str(e)},
            )
            raise PromptLoaderError(
                f"Failed to render inline template {path}: {e}"
            ) from e

    def list_available(self) -> Dict[str, list[str]]:
        """List available prompt templates under 'filesystem' and 'inline'."""
        result: Dict[str, list[str]] = {
            "filesystem": [],
            "inline": sorted(INLINE_PROMPTS.keys()),
        }

        if self.prompts_dir.is_dir():
            for md_file in self.prompts_dir.rglob("*.md"):
                relative_path = md_file.relative_to(self.prompts_dir).as_posix()
                result["filesystem"].append(relative_path)

        return result


__all__ = ["PromptLoader", "PromptLoaderError", "DEFAULT_PROMPTS_DIR", "INLINE_PROMPTS"]
