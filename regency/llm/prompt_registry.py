"""
Prompt Registry - Versioned prompt template management.

Prompts are stored as files: {prompt_id}_v{version}.txt
Example: narrative_v0.txt, summary_v1.txt
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class PromptTemplate:
    """A versioned prompt template."""
    id: str
    version: str
    template: str
    schema_name: str
    metadata: dict


class PromptRegistry:
    """Loads prompt templates from disk and caches them."""

    def __init__(self, prompts_dir: Optional[Path] = None):
        self.prompts_dir = prompts_dir or Path(__file__).parent.parent / "prompts"
        self._cache: dict[str, PromptTemplate] = {}

    def get_prompt(self, prompt_id: str, version: Optional[str] = None) -> PromptTemplate:
        """
        Get a prompt template by ID and version.

        Args:
            prompt_id: The prompt identifier (e.g., 'narrative', 'summary')
            version: Specific version (e.g., 'v0'). If None, uses the latest.
        """
        if version is None:
            versions = self.list_versions(prompt_id)
            if not versions:
                raise FileNotFoundError(f"No versions found for prompt: {prompt_id}")
            version = versions[-1]

        cache_key = f"{prompt_id}_{version}"
        if cache_key in self._cache:
            return self._cache[cache_key]

        file_path = self.prompts_dir / f"{prompt_id}_{version}.txt"
        if not file_path.exists():
            raise FileNotFoundError(f"Prompt not found: {file_path}")

        raw = file_path.read_text(encoding="utf-8")
        metadata, template = self._split_header(raw)

        prompt = PromptTemplate(
            id=prompt_id,
            version=version,
            template=template,
            schema_name=metadata.get("schema", f"{prompt_id}_output"),
            metadata=metadata
        )
        self._cache[cache_key] = prompt
        return prompt

    def list_versions(self, prompt_id: str) -> list[str]:
        """Available versions of a prompt, oldest first."""
        pattern = re.compile(rf"^{re.escape(prompt_id)}_v(\d+)\.txt$")
        numbers = []
        for path in self.prompts_dir.glob(f"{prompt_id}_v*.txt"):
            match = pattern.match(path.name)
            if match:
                numbers.append(int(match.group(1)))
        return [f"v{n}" for n in sorted(numbers)]

    def _split_header(self, raw: str) -> tuple[dict, str]:
        """Parse '# key: value' header lines; the rest is the template body."""
        metadata = {}
        lines = raw.split('\n')
        body_start = 0

        for i, line in enumerate(lines):
            if not line.startswith('#'):
                body_start = i
                break
            match = re.match(r'^#\s*(\w+):\s*(.+)$', line)
            if match:
                metadata[match.group(1).lower()] = match.group(2).strip()
        else:
            body_start = len(lines)

        return metadata, '\n'.join(lines[body_start:]).strip() + '\n'

    def clear_cache(self) -> None:
        """Clear the prompt cache."""
        self._cache.clear()
