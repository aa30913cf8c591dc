"""
Configuration management for Noteforge.

This module handles loading and accessing configuration values from config.yaml.
The core never reads configuration as global state: the pipeline builds an
EvaluatorSettings value from the manager and passes it into each component.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

from pydantic import BaseModel, ConfigDict, Field


UNBOUNDED = -1


class EvaluatorSettings(BaseModel):
    """
    Immutable settings consumed by the evaluator, resolver and pipeline.
    """

    model_config = ConfigDict(frozen=True)

    autotag: Dict[str, str] = Field(
        default_factory=dict,
        description="Keyword to tag mapping used by autotag"
    )

    namespace_tags: Dict[str, str] = Field(
        default_factory=dict,
        description="Title segment to tag mapping for namespaced titles"
    )

    namespace_separator: str = "/"

    omit_tags: List[str] = Field(
        default_factory=list,
        description="Tags subtracted from every final tag set"
    )

    include_tags: List[str] = Field(default_factory=list)
    exclude_tags: List[str] = Field(default_factory=list)

    tags_attr: Optional[str] = "tags"
    use_all_hashtags: bool = False

    max_depth: int = Field(
        default=UNBOUNDED,
        description="Default traversal depth for each_block call sites that pass none"
    )

    max_embed_depth: int = 4
    include_all_page_embeds: bool = False

    output_dir: str = "pages"
    extension: str = "md"
    base_url: str = ""

    workers: int = 4


class ConfigManager:
    """
    Manages configuration loading and access for Noteforge.
    """

    def __init__(self, config_path: str = "config.yaml"):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        try:
            if not self.config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

            with open(self.config_path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f) or {}

            self._config = self._merge(self._get_default_config(), loaded)
            logging.info(f"Configuration loaded from {self.config_path}")

        except (OSError, yaml.YAMLError) as e:
            logging.error(f"Failed to load configuration: {e}")
            # Fall back to default configuration
            self._config = self._get_default_config()

    @classmethod
    def _merge(cls, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        merged = dict(base)
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = cls._merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values as fallback."""
        return {
            "paths": {
                "data": None,
                "output": "pages",
                "script": None,
                "cache_db": "noteforge.db",
                "log_file": "noteforge.log"
            },
            "input": {
                "product": "logseq"
            },
            "output": {
                "extension": "md",
                "base_url": "",
                "manifest": True
            },
            "tags": {
                "attr": "tags",
                "omit": [],
                "include": [],
                "exclude": [],
                "use_all_hashtags": False,
                "autotag": {},
                "namespace": {},
                "namespace_separator": "/"
            },
            "traversal": {
                "max_depth": UNBOUNDED
            },
            "embeds": {
                "max_depth": 4,
                "include_all_page_embeds": False
            },
            "performance": {
                "workers": 4
            },
            "run": {
                "fail_on_warnings": False
            },
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        }

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration value (e.g., "tags.omit")
            default: Default value if key is not found

        Returns:
            The configuration value

        Examples:
            config.get("embeds.max_depth")  # Returns 4
            config.get("tags.namespace.Book")  # Returns "Books" if configured
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get an entire configuration section.

        Args:
            section: Name of the configuration section

        Returns:
            Dictionary containing the section configuration
        """
        return self._config.get(section, {})

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    def set(self, key_path: str, value: Any) -> None:
        """
        Override a configuration value using dot notation, e.g. from the command line.
        """
        keys = key_path.split('.')
        target = self._config
        for key in keys[:-1]:
            target = target.setdefault(key, {})
        target[keys[-1]] = value

    # Convenience properties for commonly used values

    @property
    def data_path(self) -> Optional[str]:
        """Get the path of the export to read."""
        return self.get("paths.data")

    @property
    def output_directory(self) -> str:
        """Get the output directory."""
        return self.get("paths.output", "pages")

    @property
    def script_path(self) -> Optional[str]:
        """Get the page script path."""
        return self.get("paths.script")

    @property
    def cache_filename(self) -> str:
        """Get the render cache database filename."""
        return self.get("paths.cache_db", "noteforge.db")

    @property
    def log_filename(self) -> str:
        """Get log file name."""
        return self.get("paths.log_file", "noteforge.log")

    @property
    def product(self) -> str:
        """Get the export format to read: logseq or roam."""
        return self.get("input.product", "logseq")

    @property
    def write_manifest(self) -> bool:
        return bool(self.get("output.manifest", True))

    @property
    def fail_on_warnings(self) -> bool:
        return bool(self.get("run.fail_on_warnings", False))

    def evaluator_settings(self) -> EvaluatorSettings:
        """
        Build the settings value passed into the evaluator and resolver.

        Returns:
            An immutable EvaluatorSettings
        """
        return EvaluatorSettings(
            autotag=self.get("tags.autotag") or {},
            namespace_tags=self.get("tags.namespace") or {},
            namespace_separator=self.get("tags.namespace_separator", "/"),
            omit_tags=self.get("tags.omit") or [],
            include_tags=self.get("tags.include") or [],
            exclude_tags=self.get("tags.exclude") or [],
            tags_attr=self.get("tags.attr"),
            use_all_hashtags=bool(self.get("tags.use_all_hashtags", False)),
            max_depth=int(self.get("traversal.max_depth", UNBOUNDED)),
            max_embed_depth=int(self.get("embeds.max_depth", 4)),
            include_all_page_embeds=bool(self.get("embeds.include_all_page_embeds", False)),
            output_dir=self.output_directory,
            extension=self.get("output.extension", "md"),
            base_url=self.get("output.base_url", "") or "",
            workers=int(self.get("performance.workers", 4)),
        )
