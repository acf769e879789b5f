"""
Prompt Manager for loading the assistant policy and canned replies from YAML
"""
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from origination.utils.logging import get_logger

logger = get_logger(__name__)

ASSISTANT_CATEGORY = "loan_assistant"
APOLOGY_CATEGORY = "apology"


class PromptManager:
    """
    Manages prompts loaded from YAML files with versioning support.
    """

    def __init__(self, prompts_file: Optional[str] = None, versions: Optional[Dict[str, str]] = None):
        """
        Initialize the prompt manager.

        Args:
            prompts_file: Path to prompts.yaml file. If None, looks for prompts.yaml in:
                         1. Current directory
                         2. Project root
            versions: Per-category version overrides (llm.prompt_versions)
        """
        if prompts_file is None:
            current_dir = Path.cwd() / "prompts.yaml"
            if current_dir.exists():
                prompts_file = str(current_dir)
            else:
                # Project root, relative to src/origination/utils/
                project_root = Path(__file__).parent.parent.parent.parent / "prompts.yaml"
                if project_root.exists():
                    prompts_file = str(project_root)
                else:
                    raise FileNotFoundError(
                        "prompts.yaml not found. Please create prompts.yaml in the project root."
                    )

        self.prompts_file = Path(prompts_file)
        if not self.prompts_file.exists():
            raise FileNotFoundError(f"Prompts file not found: {prompts_file}")

        self._versions = versions or {}
        self._prompts_data: Dict[str, Any] = {}
        self._load_prompts()

    def _load_prompts(self) -> None:
        try:
            with open(self.prompts_file, "r") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"[red]❌ Failed to load prompts:[/red] {e}")
            raise

        if not data:
            raise ValueError("Prompts file is empty or invalid")
        self._prompts_data = data
        logger.info(f"[green]✅ Loaded prompts from:[/green] {self.prompts_file}")

    def get_prompt(self, category: str, version: Optional[str] = None) -> Dict[str, Any]:
        """
        Get a prompt entry by category and version.

        Version resolution: explicit argument, then the configured override,
        then default_versions from the YAML file, then "v1".

        Raises:
            KeyError: If category or version not found
        """
        if version is None:
            defaults = self._prompts_data.get("default_versions", {})
            version = self._versions.get(category) or defaults.get(category, "v1")

        prompts = self._prompts_data.get("prompts", {})
        if category not in prompts:
            raise KeyError(f"Prompt category '{category}' not found")

        category_prompts = prompts[category]
        if version not in category_prompts:
            raise KeyError(
                f"Version '{version}' not found for category '{category}'. "
                f"Available versions: {list(category_prompts.keys())}"
            )

        prompt_data = dict(category_prompts[version])
        prompt_data["version"] = version
        prompt_data["category"] = category
        return prompt_data

    def get_system_prompt(self, category: str = ASSISTANT_CATEGORY, version: Optional[str] = None) -> str:
        """The fixed behavioral policy sent with every reasoning call"""
        return self.get_prompt(category, version).get("system", "")

    def format_context(self, lines: Dict[str, str]) -> str:
        """Render the per-turn customer digest with the policy's context template"""
        template = self.get_prompt(ASSISTANT_CATEGORY).get("context_template") or "{lines}"
        body = "\n".join(f"- {key}: {value}" for key, value in lines.items())
        return template.format(lines=body).rstrip()

    def get_text(self, category: str, key: str, default: str = "") -> str:
        """A single canned text from a category (e.g. apology.technical_problem)"""
        return self.get_prompt(category).get(key, default)


# Global prompt manager instance (lazy loaded)
_prompt_manager: Optional[PromptManager] = None


def get_prompt_manager(
    prompts_file: Optional[str] = None,
    versions: Optional[Dict[str, str]] = None,
) -> PromptManager:
    """
    Get the global prompt manager instance.
    Arguments are only used on the first call.
    """
    global _prompt_manager
    if _prompt_manager is None:
        _prompt_manager = PromptManager(prompts_file, versions)
    return _prompt_manager
