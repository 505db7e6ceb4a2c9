from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, Optional

from discovery.config.settings import DISCOVERY_CONFIG_DIR, DISCOVERY_CONFIG_FILE, DISCOVERY_OUTPUT_FILE
from discovery.core.errors import ConfigurationError
from discovery.core.models import DiscoveryConfig, hash_config
from discovery.ports.config_port import ConfigReaderPort

# whole-line // comments only; "//" inside strings (urls) is left alone
_LINE_COMMENT_RE = re.compile(r"^\s*//.*$", re.MULTILINE)


class FileConfigReader(ConfigReaderPort):
    """
    Reads ``<root>/<project>/<chain>/config.jsonc`` and the previous run's
    ``discovered.json`` next to it.
    """

    def __init__(self, root: Optional[str] = None) -> None:
        self._root = Path(root or DISCOVERY_CONFIG_DIR)

    def read_config(self, project: str, chain: str) -> DiscoveryConfig:
        path = self._root / project / chain / DISCOVERY_CONFIG_FILE
        raw = self._load(path, strip_comments=True)
        if raw.get("name", project) != project:
            raise ConfigurationError(f"{path}: name {raw.get('name')!r} does not match project {project!r}")
        raw.setdefault("name", project)
        raw.setdefault("chain", chain)
        return DiscoveryConfig.from_dict(raw, hash=hash_config(raw))

    def read_discovery(self, project: str, chain: str) -> Dict[str, Any]:
        path = self._root / project / chain / DISCOVERY_OUTPUT_FILE
        return self._load(path)

    @staticmethod
    def _load(path: Path, strip_comments: bool = False) -> Dict[str, Any]:
        if not path.exists():
            raise ConfigurationError(f"Missing file: {path}")
        text = path.read_text(encoding="utf-8")
        if strip_comments:
            text = _LINE_COMMENT_RE.sub("", text)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path}: expected an object")
        return data
