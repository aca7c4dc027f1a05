"""Settings library for the Claude Code settings.json document.

Provides:
    - ConfigPaths: resolution of the Claude config directory and the files kept in it.
    - ClaudeSettings: typed model of the known settings fields plus opaque residual fields.
    - SettingsFile: validated reading and atomic writing of settings.json.
    - write_json: shared deterministic, atomic JSON writer.

Fields we do not model are carried through the ``extra`` mapping of each record, so a
read-modify-write cycle only ever changes what the caller changed.
"""

import dataclasses
import json
import logging
import os
import pathlib
import shutil
from typing import Any, Dict, List, Optional

from ..status import status

app_name: str = 'ClaudeCodeSwitch'

CONFIG_DIR_ENV_KEY: str = 'CLAUDE_CONFIG_DIR'
DEFAULT_CONFIG_DIR_NAME: str = '.claude'
SETTINGS_FILENAME: str = 'settings.json'
PRESETS_FILENAME: str = 'env_presets.json'

JSON_INDENT: int = 2


def validate_str_map(value: Any, field: str) -> Dict[str, str]:
    """Validate a mapping of string keys to string values.

    Args:
        value: Decoded JSON value.
        field: Field name used in error messages.

    Returns:
        A copy of the mapping.

    Raises:
        TypeError: If value is not a dict or contains non-string values.
    """
    if not isinstance(value, dict):
        raise TypeError(f'"{field}" must be an object, got {type(value).__name__}.')
    for k, v in value.items():
        if not isinstance(v, str):
            raise TypeError(f'"{field}.{k}" must be a string, got {type(v).__name__}.')
    return dict(value)


def _validate_bool_map(value: Any, field: str) -> Dict[str, bool]:
    if not isinstance(value, dict):
        raise TypeError(f'"{field}" must be an object, got {type(value).__name__}.')
    for k, v in value.items():
        if not isinstance(v, bool):
            raise TypeError(f'"{field}.{k}" must be a boolean, got {type(v).__name__}.')
    return dict(value)


def _validate_str_list(value: Any, field: str) -> List[str]:
    if not isinstance(value, list):
        raise TypeError(f'"{field}" must be an array, got {type(value).__name__}.')
    for i, v in enumerate(value):
        if not isinstance(v, str):
            raise TypeError(f'"{field}[{i}]" must be a string, got {type(v).__name__}.')
    return list(value)


def _validate_object(value: Any, field: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise TypeError(f'"{field}" must be an object, got {type(value).__name__}.')
    return value


def _validate_list(value: Any, field: str) -> List[Any]:
    if not isinstance(value, list):
        raise TypeError(f'"{field}" must be an array, got {type(value).__name__}.')
    return value


def _pick(data: Dict[str, Any], key: str, expected: type, field: str) -> Any:
    """Return ``data[key]`` type-checked, or None when the key is absent or null."""
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, expected):
        raise TypeError(f'"{field}.{key}" must be {expected.__name__}, got {type(value).__name__}.')
    return value


def _residual(data: Dict[str, Any], known: tuple) -> Dict[str, Any]:
    """Collect unmodeled keys. Known keys holding null are kept here so they survive a write."""
    return {k: v for k, v in data.items() if k not in known or v is None}


@dataclasses.dataclass
class Hook:
    """A single hook command."""
    KEYS = ('type', 'command')

    type: Optional[str] = None
    command: Optional[str] = None
    extra: Dict[str, Any] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, field: str = 'hook') -> 'Hook':
        data = _validate_object(data, field)
        return cls(
            type=_pick(data, 'type', str, field),
            command=_pick(data, 'command', str, field),
            extra=_residual(data, cls.KEYS),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = dict(self.extra)
        if self.type is not None:
            d['type'] = self.type
        if self.command is not None:
            d['command'] = self.command
        return d


@dataclasses.dataclass
class HookGroup:
    """A group of hooks registered under one hook event."""
    KEYS = ('hooks',)

    hooks: Optional[List[Hook]] = None
    extra: Dict[str, Any] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, field: str = 'group') -> 'HookGroup':
        data = _validate_object(data, field)
        hooks = _pick(data, 'hooks', list, field)
        if hooks is not None:
            hooks = [Hook.from_dict(h, f'{field}.hooks[{i}]') for i, h in enumerate(hooks)]
        return cls(hooks=hooks, extra=_residual(data, cls.KEYS))

    def to_dict(self) -> Dict[str, Any]:
        d = dict(self.extra)
        if self.hooks is not None:
            d['hooks'] = [h.to_dict() for h in self.hooks]
        return d


@dataclasses.dataclass
class Permissions:
    """Tool permission allow/deny lists."""
    KEYS = ('allow', 'deny')

    allow: Optional[List[str]] = None
    deny: Optional[List[str]] = None
    extra: Dict[str, Any] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, field: str = 'permissions') -> 'Permissions':
        data = _validate_object(data, field)
        allow = data.get('allow')
        deny = data.get('deny')
        return cls(
            allow=_validate_str_list(allow, f'{field}.allow') if allow is not None else None,
            deny=_validate_str_list(deny, f'{field}.deny') if deny is not None else None,
            extra=_residual(data, cls.KEYS),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = dict(self.extra)
        if self.allow is not None:
            d['allow'] = list(self.allow)
        if self.deny is not None:
            d['deny'] = list(self.deny)
        return d


@dataclasses.dataclass
class ClaudeSettings:
    """The Claude Code settings.json document.

    Only ``env`` is ever changed by this application. The other known fields are decoded
    so that malformed documents are reported instead of silently rewritten, and every
    field we do not know about is kept verbatim in ``extra``.
    """
    KEYS = (
        'env',
        'includeCoAuthoredBy',
        'permissions',
        'hooks',
        'enabledPlugins',
        'alwaysThinkingEnabled',
    )

    env: Optional[Dict[str, str]] = None
    includeCoAuthoredBy: Optional[bool] = None
    permissions: Optional[Permissions] = None
    hooks: Optional[Dict[str, List[HookGroup]]] = None
    enabledPlugins: Optional[Dict[str, bool]] = None
    alwaysThinkingEnabled: Optional[bool] = None
    extra: Dict[str, Any] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> 'ClaudeSettings':
        """Decode a settings document.

        Raises:
            TypeError: If the document or one of its known fields has the wrong shape.
        """
        data = _validate_object(data, 'settings')

        env = data.get('env')
        if env is not None:
            env = validate_str_map(env, 'env')

        permissions = data.get('permissions')
        if permissions is not None:
            permissions = Permissions.from_dict(permissions)

        hooks = data.get('hooks')
        if hooks is not None:
            hooks = {
                event: [
                    HookGroup.from_dict(g, f'hooks.{event}[{i}]')
                    for i, g in enumerate(_validate_list(groups, f'hooks.{event}'))
                ]
                for event, groups in _validate_object(hooks, 'hooks').items()
            }

        plugins = data.get('enabledPlugins')
        if plugins is not None:
            plugins = _validate_bool_map(plugins, 'enabledPlugins')

        return cls(
            env=env,
            includeCoAuthoredBy=_pick(data, 'includeCoAuthoredBy', bool, 'settings'),
            permissions=permissions,
            hooks=hooks,
            enabledPlugins=plugins,
            alwaysThinkingEnabled=_pick(data, 'alwaysThinkingEnabled', bool, 'settings'),
            extra=_residual(data, cls.KEYS),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = dict(self.extra)
        if self.env is not None:
            d['env'] = dict(self.env)
        if self.includeCoAuthoredBy is not None:
            d['includeCoAuthoredBy'] = self.includeCoAuthoredBy
        if self.permissions is not None:
            d['permissions'] = self.permissions.to_dict()
        if self.hooks is not None:
            d['hooks'] = {k: [g.to_dict() for g in v] for k, v in self.hooks.items()}
        if self.enabledPlugins is not None:
            d['enabledPlugins'] = dict(self.enabledPlugins)
        if self.alwaysThinkingEnabled is not None:
            d['alwaysThinkingEnabled'] = self.alwaysThinkingEnabled
        return d


def dumps(data: Any) -> str:
    """Serialize data the way both of our files are written: sorted keys, indented, UTF-8."""
    return json.dumps(data, indent=JSON_INDENT, sort_keys=True, ensure_ascii=False)


def write_json(path: pathlib.Path, data: Any) -> None:
    """Serialize data and atomically replace path with it.

    The document is written to a sibling temporary file first, then moved over the
    target, so a failed write never leaves a truncated file behind. Symlinks are
    followed, and an existing file keeps its permission bits.

    Raises:
        TypeError, ValueError: If data cannot be serialized.
        OSError: If the file cannot be written or replaced.
    """
    text = dumps(data)
    target = path.resolve()
    tmp_path = target.with_name(target.name + '.tmp')
    try:
        with tmp_path.open('w', encoding='utf-8') as f:
            f.write(text)
            f.write('\n')
        if target.exists():
            shutil.copymode(target, tmp_path)
        tmp_path.replace(target)
    except OSError:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


class ConfigPaths:
    """Resolve the Claude config directory and the files this application touches.

    The directory is taken from the ``config_dir`` argument, then from the
    ``CLAUDE_CONFIG_DIR`` environment variable, and finally defaults to ``~/.claude``.
    """

    def __init__(self, config_dir: Optional[os.PathLike] = None) -> None:
        if config_dir:
            p = pathlib.Path(config_dir)
        elif os.environ.get(CONFIG_DIR_ENV_KEY):
            p = pathlib.Path(os.environ[CONFIG_DIR_ENV_KEY]).expanduser()
        else:
            p = pathlib.Path.home() / DEFAULT_CONFIG_DIR_NAME
        logging.debug(f'Using Claude config directory: {p}')

        self.config_dir: pathlib.Path = p
        self.settings_path: pathlib.Path = p / SETTINGS_FILENAME
        self.presets_path: pathlib.Path = p / PRESETS_FILENAME

    def __repr__(self) -> str:
        return f'<ConfigPaths config_dir={str(self.config_dir)!r}>'


class SettingsFile:
    """Reads and writes the externally-owned settings.json.

    Unlike the preset list, a missing or broken settings.json is always an error: guessing
    its content would risk clobbering the user's Claude Code configuration.
    """

    def __init__(self, path: os.PathLike) -> None:
        self.path: pathlib.Path = pathlib.Path(path)

    def __repr__(self) -> str:
        return f'<SettingsFile path={str(self.path)!r}>'

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> ClaudeSettings:
        """Load and decode settings.json.

        Returns:
            The decoded settings document.

        Raises:
            status.SettingsNotReadableException: If the file is missing or cannot be read.
            status.SettingsParseFailureException: If the content is not a valid settings document.
        """
        logging.debug(f'Reading settings from "{self.path}"')
        if not self.path.exists():
            raise status.SettingsNotReadableException(f'"{self.path}" does not exist.')

        try:
            raw = self.path.read_bytes()
        except OSError as ex:
            raise status.SettingsNotReadableException(f'{ex}') from ex

        try:
            data = json.loads(raw.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as ex:
            raise status.SettingsParseFailureException(f'{ex}') from ex

        try:
            return ClaudeSettings.from_dict(data)
        except (TypeError, ValueError) as ex:
            raise status.SettingsParseFailureException(f'{ex}') from ex

    def write(self, settings: ClaudeSettings) -> None:
        """Encode and atomically overwrite settings.json.

        Raises:
            status.SettingsWriteFailureException: If serialization or the file write fails.
        """
        logging.debug(f'Writing settings to "{self.path}"')
        try:
            write_json(self.path, settings.to_dict())
        except (OSError, TypeError, ValueError) as ex:
            raise status.SettingsWriteFailureException(f'{ex}') from ex

        from ..ui.actions import signals
        signals.settingsWritten.emit(str(self.path))
