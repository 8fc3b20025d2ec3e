"""Config module."""

from typing import Dict, Any
from pydantic import ValidationError

from ..errors import ConfigError
from .models import RepoConfig, UserConfig, RungsConfig, ToolConfig

class Config(RungsConfig):
    """Config object holding repository and user config.

    Built from the nested dict produced by the config parser.
    """
    def __init__(self, config: Dict[str, Dict[str, Any]]):
        """Initialize with parsed config dict."""
        try:
            super().__init__(
                repo=RepoConfig.model_validate(config.get('repo', {})),
                user=UserConfig.model_validate(config.get('user', {})),
                tool=ToolConfig.model_validate(config.get('tool', {})),
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

def default_config() -> Config:
    """Get default config without reading any file."""
    return Config({
        'repo': {
            'github_remote': 'origin',
            'default_branch': 'main',
        },
        'user': {},
        'tool': {},
    })
