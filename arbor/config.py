"""Configuration document: run settings plus the sitemap.

The whole run is described by one JSON file::

    {
      "settings": {
        "javascript": false,
        "workers": 4,
        "export": "json",
        "output_filename": "output.json",
        "userAgents": ["Mozilla/5.0 ..."],
        "proxy": [],
        "log": false,
        "log_file": "arbor.log"
      },
      "sitemap": {"_id": "...", "startUrl": [...], "selectors": [...]}
    }

Settings are read once at startup and passed explicitly to the driver.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from arbor.common.exceptions import ConfigurationError
from arbor.export import check_export_format
from arbor.sitemap import SiteMap

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "sitemap.json"


class Settings(BaseModel):
    """Run settings.

    Attributes:
        gui: Kept for compatibility with existing configuration files.
        log: Also write log records to ``log_file``.
        log_file: Path of the log file used when ``log`` is set.
        javascript: Render pages in a headless browser instead of plain HTTP.
        workers: Number of workers per orchestrator, and the size of its
            job and result queues.
        export: Export format, one of ``json``, ``xml``, ``csv``.
        output_file: Path of the export file.
        user_agents: User agents. Only the first one is sent.
        proxy: Proxy URLs. Only the first one is used.
        captcha: API key for an external CAPTCHA-solving backend.
        timeout: HTTP timeout in seconds for the plain backend (None = none).
        max_concurrent_fetches: Optional bound on concurrent fetches across
            all recursion levels (None = unbounded).
    """

    model_config = ConfigDict(populate_by_name=True)

    gui: bool = False
    log: bool = False
    log_file: str = "arbor.log"
    javascript: bool = False
    workers: int = Field(default=1, ge=1)
    export: str = "json"
    output_file: str = Field(default="output.json", alias="output_filename")
    user_agents: list[str] = Field(default_factory=list, alias="userAgents")
    proxy: list[str] = Field(default_factory=list)
    captcha: str = ""
    timeout: float | None = None
    max_concurrent_fetches: int | None = Field(default=None, ge=1)

    @property
    def export_format(self) -> str:
        """Normalized export format name."""
        return self.export.strip().lower()

    @property
    def primary_user_agent(self) -> str:
        """The user agent workers send. Empty means the backend default."""
        return self.user_agents[0] if self.user_agents else ""

    @property
    def primary_proxy(self) -> str | None:
        """The proxy the fetch backends use, if any."""
        return self.proxy[0] if self.proxy else None


class ConfigDocument(BaseModel):
    """Top-level configuration file contents."""

    model_config = ConfigDict(populate_by_name=True)

    settings: Settings = Field(default_factory=Settings)
    sitemap: SiteMap = Field(default_factory=SiteMap)


def load_config(path: Path | str) -> ConfigDocument:
    """Read and validate a configuration file.

    Args:
        path: Path to the JSON configuration document.

    Returns:
        The validated ConfigDocument.

    Raises:
        ConfigurationError: If the file can't be read, isn't valid JSON,
            fails validation, or names an unsupported export format.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            f"Could not read configuration file: {e}", str(path)
        ) from e

    try:
        document = ConfigDocument.model_validate_json(raw)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e}", str(path)
        ) from e

    validate_settings(document.settings)
    logger.debug(
        f"Loaded configuration from {path}: "
        f"{len(document.sitemap.start_urls)} start URLs, "
        f"{len(document.sitemap.selectors)} selectors"
    )
    return document


def validate_settings(settings: Settings) -> None:
    """Reject settings the driver can't run with.

    Raises:
        UnsupportedExportFormatError: For an export format with no sink.
    """
    check_export_format(settings.export_format)


def dump_config(document: ConfigDocument, path: Path | str) -> None:
    """Write a configuration document using its JSON key names."""
    path = Path(path)
    data = document.model_dump(mode="json", by_alias=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def starter_config() -> ConfigDocument:
    """A small working configuration used by ``arbor init``."""
    return ConfigDocument.model_validate(
        {
            "settings": {
                "workers": 2,
                "export": "json",
                "output_filename": "output.json",
                "userAgents": [],
                "proxy": [],
            },
            "sitemap": {
                "_id": "quotes",
                "startUrl": ["https://quotes.toscrape.com/page/[1-2]"],
                "selectors": [
                    {
                        "id": "quote",
                        "type": "SelectorElement",
                        "parentSelectors": ["_root"],
                        "selector": "div.quote",
                        "multiple": True,
                    },
                    {
                        "id": "text",
                        "type": "SelectorText",
                        "parentSelectors": ["quote"],
                        "selector": "span.text",
                    },
                    {
                        "id": "author",
                        "type": "SelectorText",
                        "parentSelectors": ["quote"],
                        "selector": "small.author",
                    },
                    {
                        "id": "tags",
                        "type": "SelectorText",
                        "parentSelectors": ["_root"],
                        "selector": "div.tags-box a.tag",
                        "multiple": True,
                    },
                ],
            },
        }
    )
