"""Config parser logic."""

from pathlib import Path
from typing import Dict, Union, Any, Optional, Tuple
import logging
import yaml
from pydantic import ValidationError

from ...errors import ConfigError
from ...typing import GitInterface
from ..models import RepoConfig, UserConfig

# Get module logger
logger = logging.getLogger(__name__)

ConfigValue = Union[str, bool]
SectionConfig = Dict[str, Any]  # Use Any since yaml can return various types
Config = Dict[str, SectionConfig]

REPO_CONFIG_FILE = '.rungs.yaml'
SECTIONS = {
    'repo': RepoConfig,
    'user': UserConfig,
}

def user_config_file_path() -> str:
    """Get path to the per-user config file."""
    return str(Path.home() / ".config" / "rungs" / "config.yaml")

def _load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a YAML mapping, treating a missing file as empty."""
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping with 'repo' and/or 'user' sections")
    return data

def _merge_sections(config: Config, overrides: Dict[str, Any], source: str) -> None:
    for section in SECTIONS:
        values = overrides.get(section)
        if isinstance(values, dict):
            logger.debug(f"Config {section} from {source}: {values}")
            config[section].update(values)

def parse_repo_from_remote_url(remote_url: str) -> Optional[Tuple[str, str]]:
    """Extract (owner, name) from an SSH or HTTPS remote url."""
    remote_url = remote_url.strip()
    if not remote_url:
        return None
    if "://" in remote_url:
        # HTTPS format: https://github.com/owner/repo.git
        repo_part = remote_url.split("://", 1)[1].split("/", 1)[-1]
    elif "@" in remote_url:
        # SSH format: git@github.com:owner/repo.git
        repo_part = remote_url.split(":")[-1]
    else:
        return None

    if repo_part.endswith(".git"):
        repo_part = repo_part[:-len(".git")]
    parts = [p for p in repo_part.strip("/").split("/") if p]
    if len(parts) < 2:
        return None
    return parts[-2], parts[-1]

def parse_config(git_cmd: GitInterface, user_config_path: Optional[str] = None,
                 repo_config_path: str = REPO_CONFIG_FILE) -> Config:
    """Parse config from defaults, the user config file and the repository config file."""
    config: Config = {
        'repo': {
            'github_remote': 'origin',
            'default_branch': 'main',
            'github_host': 'github.com',
        },
        'user': {},
        'tool': {},
    }

    user_path = user_config_path or user_config_file_path()
    _merge_sections(config, _load_yaml(user_path), user_path)

    repo_config = _load_yaml(repo_config_path)
    if repo_config:
        logger.debug(f"Found {repo_config_path}, loading...")
        _merge_sections(config, repo_config, repo_config_path)
        if isinstance(repo_config.get('tool'), dict):
            config['tool'].update(repo_config['tool'])

    # Try to extract repo owner/name from git remote if not in config
    if not config['repo'].get('github_repo_owner') or not config['repo'].get('github_repo_name'):
        remote = config['repo'].get('github_remote', 'origin')
        try:
            parsed = parse_repo_from_remote_url(git_cmd.run_cmd(f"remote get-url {remote}"))
        except Exception as e:
            logger.warning(f"Failed to read url of remote '{remote}': {e}")
            parsed = None
        if parsed:
            owner, name = parsed
            if not config['repo'].get('github_repo_owner'):
                config['repo']['github_repo_owner'] = owner
            if not config['repo'].get('github_repo_name'):
                config['repo']['github_repo_name'] = name

    return config

def section_for_key(key: str) -> str:
    """Find which config section owns a key."""
    for section, model in SECTIONS.items():
        if key in model.model_fields:
            return section
    known = sorted(k for model in SECTIONS.values() for k in model.model_fields)
    raise ConfigError(f"Unknown config key '{key}'. Known keys: {', '.join(known)}")

def get_config_value(config: Config, key: str) -> Any:
    """Get a single value from a parsed (and defaulted) config."""
    section = section_for_key(key)
    model = SECTIONS[section].model_validate(config.get(section, {}))
    return getattr(model, key)

def list_config_values(config: Config) -> Dict[str, Any]:
    """Flatten repo and user sections with defaults applied."""
    values: Dict[str, Any] = {}
    for section, model_cls in SECTIONS.items():
        model = model_cls.model_validate(config.get(section, {}))
        for key in model_cls.model_fields:
            values[key] = getattr(model, key)
    return values

def set_config_value(key: str, raw_value: str, path: Optional[str] = None) -> Any:
    """Validate and write a value into the user config file.

    The raw value is read as a YAML scalar, so "false" becomes False.
    Returns the stored value.
    """
    section = section_for_key(key)
    config_path = Path(path or user_config_file_path())
    data = _load_yaml(config_path)

    try:
        value = yaml.safe_load(raw_value)
    except yaml.YAMLError:
        value = raw_value
    if value is None:
        value = raw_value

    section_values = dict(data.get(section) or {})
    model_cls = SECTIONS[section]
    try:
        section_values[key] = value
        model = model_cls.model_validate(section_values)
    except ValidationError:
        # "123" read as an int for a string field, retry with the raw text
        section_values[key] = raw_value
        try:
            model = model_cls.model_validate(section_values)
        except ValidationError as e:
            raise ConfigError(f"Invalid value for {key}: {raw_value!r}") from e
    stored = getattr(model, key)
    section_values[key] = stored

    data[section] = section_values
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        yaml.safe_dump(data, f, default_flow_style=False)
    logger.debug(f"Wrote {section}.{key}={stored!r} to {config_path}")
    return stored
