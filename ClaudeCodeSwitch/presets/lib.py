"""Environment presets and their activation.

A preset is a named ``env`` block for Claude Code's settings.json. The presets live in
``env_presets.json`` next to settings.json; activating one rewrites the ``env`` field of
settings.json and then moves the active flag.
"""
import copy
import dataclasses
import json
import logging
import os
import pathlib
import uuid
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from PySide6 import QtCore

from ..settings import lib
from ..status import status
from ..ui.actions import signals

DEFAULT_PRESET_NAME: str = 'Default'
BASE_URL_KEY: str = 'ANTHROPIC_BASE_URL'
NO_URL: str = 'No URL'


def new_preset_id() -> str:
    """Return a new opaque preset identifier."""
    return str(uuid.uuid4()).upper()


@dataclasses.dataclass
class EnvPreset:
    """A named set of environment variables.

    Serialized as ``{"id", "name", "env", "isActive"}``.
    """
    name: str
    env: Dict[str, str] = dataclasses.field(default_factory=dict)
    is_active: bool = False
    id: str = dataclasses.field(default_factory=new_preset_id)

    @property
    def display_url(self) -> str:
        """The base URL the preset points Claude Code at."""
        return self.env.get(BASE_URL_KEY, NO_URL)

    def copy(self) -> 'EnvPreset':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'env': dict(self.env),
            'isActive': self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Any) -> 'EnvPreset':
        """Decode a stored preset.

        Raises:
            TypeError: If a field is missing or of the wrong type.
        """
        if not isinstance(data, dict):
            raise TypeError(f'Preset must be an object, got {type(data).__name__}.')
        for key in ('id', 'name'):
            if not isinstance(data.get(key), str):
                raise TypeError(f'Preset "{key}" must be a string.')
        is_active = data.get('isActive', False)
        if not isinstance(is_active, bool):
            raise TypeError('Preset "isActive" must be a boolean.')
        return cls(
            id=data['id'],
            name=data['name'],
            env=lib.validate_str_map(data.get('env', {}), 'env'),
            is_active=is_active,
        )


def parse_env_json(text: str) -> Dict[str, str]:
    """Parse the env block typed into an editor.

    Args:
        text: JSON text, expected to be an object of string values.

    Returns:
        The parsed environment mapping.

    Raises:
        status.EnvParseException: If the text is not a JSON object of strings.
    """
    try:
        data = json.loads(text)
        return lib.validate_str_map(data, 'env')
    except (json.JSONDecodeError, TypeError) as ex:
        raise status.EnvParseException(f'{ex}') from ex


def format_env_json(env: Dict[str, str]) -> str:
    """Format an env block for editing."""
    return lib.dumps(env)


class PresetStore:
    """The ordered, locally-owned list of presets backed by env_presets.json.

    Every mutating method saves the list. When the save fails the in-memory change is
    rolled back, so the list always matches what is on disk.
    """

    def __init__(self, path: os.PathLike) -> None:
        self.path = pathlib.Path(path)
        self._items: List[EnvPreset] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[EnvPreset]:
        return iter(self._items)

    def __getitem__(self, key: Union[int, str]) -> EnvPreset:
        if isinstance(key, int):
            return self._items[key]
        if isinstance(key, str):
            item = self.get(key)
            if item is None:
                raise KeyError(f'No preset with id \'{key}\'')
            return item
        raise TypeError('Key must be int or str')

    def get(self, preset_id: str) -> Optional[EnvPreset]:
        return next((item for item in self._items if item.id == preset_id), None)

    def index(self, preset_id: str) -> int:
        for idx, item in enumerate(self._items):
            if item.id == preset_id:
                return idx
        raise KeyError(f'No preset with id \'{preset_id}\'')

    def find_by_name(self, name: str) -> Optional[EnvPreset]:
        return next((item for item in self._items if item.name == name), None)

    def active(self) -> Optional[EnvPreset]:
        return next((item for item in self._items if item.is_active), None)

    def items(self) -> List[EnvPreset]:
        """Return copies of all presets in order."""
        return [item.copy() for item in self._items]

    def load(self) -> List[EnvPreset]:
        """Load the presets from disk.

        A missing or malformed file yields an empty list: the list can be rebuilt from
        settings.json, see :meth:`ActivationEngine.bootstrap`.
        """
        self._items = []
        if not self.path.exists():
            logging.debug(f'No presets file at "{self.path}"')
            return self._items

        try:
            with self.path.open('r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise TypeError(f'Expected a list of presets, got {type(data).__name__}.')
            items = [EnvPreset.from_dict(d) for d in data]
        except (OSError, ValueError, TypeError) as ex:
            logging.warning(f'Failed to load presets from "{self.path}": {ex}')
            return self._items

        active = [item for item in items if item.is_active]
        if len(active) > 1:
            logging.warning(f'{len(active)} presets are marked active, keeping "{active[0].name}"')
            for item in active[1:]:
                item.is_active = False

        self._items = items
        logging.debug(f'Loaded {len(items)} presets from "{self.path}"')
        return self._items

    def save(self) -> None:
        """Write the presets to disk.

        Raises:
            status.PresetsWriteFailureException: If the list cannot be serialized or written.
        """
        logging.debug(f'Saving {len(self._items)} presets to "{self.path}"')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            lib.write_json(self.path, [item.to_dict() for item in self._items])
        except (OSError, TypeError, ValueError) as ex:
            raise status.PresetsWriteFailureException(f'{ex}') from ex

    def _commit(self, previous: List[EnvPreset]) -> None:
        try:
            self.save()
        except status.PresetsWriteFailureException:
            self._items = previous
            raise

    def add(self, preset: EnvPreset, index: Optional[int] = None) -> int:
        """Append (or insert) a preset and save. Returns its row."""
        previous = [item.copy() for item in self._items]
        if index is None:
            self._items.append(preset)
            index = len(self._items) - 1
        else:
            self._items.insert(index, preset)
        self._commit(previous)
        return index

    def remove(self, preset_id: str) -> int:
        """Remove a preset and save. Returns the row it occupied."""
        idx = self.index(preset_id)
        previous = [item.copy() for item in self._items]
        self._items.pop(idx)
        self._commit(previous)
        return idx

    def update(self, preset: EnvPreset) -> int:
        """Replace the name and env of the stored preset with the same id and save.

        The stored active flag is kept; only :meth:`set_active` moves it.
        """
        idx = self.index(preset.id)
        previous = [item.copy() for item in self._items]
        stored = self._items[idx]
        stored.name = preset.name
        stored.env = dict(preset.env)
        self._commit(previous)
        return idx

    def set_active(self, preset_id: str) -> int:
        """Flag a single preset as active, clearing every other flag, and save."""
        idx = self.index(preset_id)
        previous = [item.copy() for item in self._items]
        for item in self._items:
            item.is_active = item.id == preset_id
        self._commit(previous)
        return idx

    def upsert_active(self, name: str, env: Dict[str, str]) -> Tuple[int, bool]:
        """Refresh the first preset called name with env, or insert one at the top, flag it
        active and save.

        Returns:
            The row of the preset and whether it was created.
        """
        previous = [item.copy() for item in self._items]
        existing = self.find_by_name(name)
        created = existing is None
        if created:
            existing = EnvPreset(name=name)
            self._items.insert(0, existing)
        existing.env = dict(env)
        for item in self._items:
            item.is_active = item is existing
        self._commit(previous)
        return self._items.index(existing), created


@dataclasses.dataclass(frozen=True)
class Snapshot:
    """The state published after each operation."""
    presets: Tuple[EnvPreset, ...] = ()
    last_error: Optional[str] = None

    @property
    def active(self) -> Optional[EnvPreset]:
        return next((p for p in self.presets if p.is_active), None)


class ActivationEngine(QtCore.QObject):
    """Orchestrates the preset store and settings.json.

    settings.json is the source of truth for what Claude Code actually uses: a preset is
    only ever flagged active after its env was written there successfully.

    Every operation returns True on success. On failure it returns False, leaves the
    persisted state as it was and publishes the reason as :attr:`last_error`.
    """

    snapshotChanged = QtCore.Signal(object)

    presetsReloaded = QtCore.Signal()
    presetAdded = QtCore.Signal(int)
    presetRemoved = QtCore.Signal(int)
    presetUpdated = QtCore.Signal(int)
    presetActivated = QtCore.Signal(int)

    def __init__(
            self,
            paths: Optional[lib.ConfigPaths] = None,
            parent: Optional[QtCore.QObject] = None
    ) -> None:
        super().__init__(parent=parent)
        self.paths = paths or lib.ConfigPaths()
        self.settings_file = lib.SettingsFile(self.paths.settings_path)
        self.store = PresetStore(self.paths.presets_path)
        self._last_error: Optional[str] = None

        self.store.load()
        self.bootstrap()

    def __repr__(self) -> str:
        return f'<ActivationEngine presets={len(self.store)}, config_dir={str(self.paths.config_dir)!r}>'

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def presets(self) -> Tuple[EnvPreset, ...]:
        return tuple(self.store.items())

    def snapshot(self) -> Snapshot:
        return Snapshot(presets=self.presets, last_error=self._last_error)

    def clear_error(self) -> None:
        if self._last_error is None:
            return
        self._last_error = None
        self._publish()

    def _publish(self) -> None:
        self.snapshotChanged.emit(self.snapshot())

    def _fail(self, ex: status.BaseStatusException) -> bool:
        self._last_error = str(ex)
        self._publish()
        return False

    def _succeed(self) -> bool:
        self._last_error = None
        self._publish()
        return True

    def reload(self) -> bool:
        """Reload the preset list from disk and bootstrap again."""
        self.store.load()
        self.presetsReloaded.emit()
        return self.bootstrap()

    def bootstrap(self) -> bool:
        """Mirror the current settings.json env into a "Default" preset.

        Only runs when no preset is active. Refreshes an existing preset named "Default"
        or inserts a new one at the top, marks it active and saves the list. Does nothing
        when settings.json has no env block.
        """
        if self.store.active() is not None:
            logging.debug('A preset is already active, skipping bootstrap')
            self._publish()
            return True

        try:
            settings = self.settings_file.read()
        except status.BaseStatusException as ex:
            return self._fail(ex)

        if settings.env is None:
            logging.debug('settings.json has no env block, nothing to bootstrap')
            self._publish()
            return True

        try:
            idx, created = self.store.upsert_active(DEFAULT_PRESET_NAME, settings.env)
        except status.BaseStatusException as ex:
            return self._fail(ex)

        if created:
            logging.debug(f'Created "{DEFAULT_PRESET_NAME}" preset from settings.json')
            self.presetAdded.emit(idx)
        else:
            logging.debug(f'Refreshed "{DEFAULT_PRESET_NAME}" preset from settings.json')
            self.presetUpdated.emit(idx)
        signals.presetsChanged.emit()
        return self._succeed()

    def current_env(self) -> Optional[Dict[str, str]]:
        """Return the env block currently in settings.json, or None.

        Used to pre-fill the env of a new preset.
        """
        try:
            settings = self.settings_file.read()
        except status.BaseStatusException as ex:
            self._fail(ex)
            return None
        return dict(settings.env) if settings.env is not None else None

    def activate(self, preset_id: str) -> bool:
        """Write a preset's env into settings.json and flag it active.

        The active flags are only moved after settings.json was written; a failed read or
        write leaves every flag untouched.

        Args:
            preset_id: Id of an existing preset.
        """
        target = self.store.get(preset_id)
        if target is None:
            return self._fail(status.PresetNotFoundException(f'No preset with id "{preset_id}".'))

        signals.presetAboutToBeActivated.emit(target.name)

        try:
            settings = self.settings_file.read()
        except status.BaseStatusException as ex:
            logging.error(f'Cannot activate "{target.name}": settings.json could not be read')
            return self._fail(ex)

        settings.env = dict(target.env)

        try:
            self.settings_file.write(settings)
        except status.BaseStatusException as ex:
            logging.error(f'Cannot activate "{target.name}": settings.json could not be written')
            return self._fail(ex)

        try:
            idx = self.store.set_active(preset_id)
        except status.BaseStatusException as ex:
            logging.error(f'settings.json now uses "{target.name}", but the preset list was not saved')
            return self._fail(ex)

        logging.debug(f'Activated preset: {target.name}')
        self.presetActivated.emit(idx)
        signals.presetActivated.emit(target.name)
        return self._succeed()

    def _validate(self, preset: EnvPreset) -> None:
        if not isinstance(preset.name, str) or not preset.name.strip():
            raise status.PresetInvalidException('Preset name cannot be empty.')
        try:
            lib.validate_str_map(preset.env, 'env')
        except TypeError as ex:
            raise status.PresetInvalidException(f'{ex}') from ex

    def add(self, preset: EnvPreset) -> bool:
        """Append a new, inactive preset and save the list.

        settings.json is not touched.
        """
        try:
            self._validate(preset)
            if self.store.get(preset.id) is not None:
                raise status.PresetInvalidException(f'A preset with id "{preset.id}" already exists.')
            item = preset.copy()
            item.is_active = False
            idx = self.store.add(item)
        except status.BaseStatusException as ex:
            return self._fail(ex)

        logging.debug(f'Added preset: {item.name}')
        self.presetAdded.emit(idx)
        signals.presetsChanged.emit()
        return self._succeed()

    def delete(self, preset_id: str) -> bool:
        """Remove a preset and save the list.

        Deleting the active preset leaves settings.json as it is, and no preset is
        active afterwards.
        """
        item = self.store.get(preset_id)
        if item is None:
            return self._fail(status.PresetNotFoundException(f'No preset with id "{preset_id}".'))
        try:
            idx = self.store.remove(preset_id)
        except status.BaseStatusException as ex:
            return self._fail(ex)

        if item.is_active:
            logging.warning(f'Deleted the active preset "{item.name}", no preset is active now')
        else:
            logging.debug(f'Deleted preset: {item.name}')
        self.presetRemoved.emit(idx)
        signals.presetsChanged.emit()
        return self._succeed()

    def update(self, preset: EnvPreset) -> bool:
        """Replace the name and env of a stored preset and save the list.

        settings.json is not touched, even when the preset is the active one: it has to be
        activated again for the edit to reach Claude Code.
        """
        if self.store.get(preset.id) is None:
            return self._fail(status.PresetNotFoundException(f'No preset with id "{preset.id}".'))
        try:
            self._validate(preset)
            idx = self.store.update(preset)
        except status.BaseStatusException as ex:
            return self._fail(ex)

        logging.debug(f'Updated preset: {preset.name}')
        self.presetUpdated.emit(idx)
        signals.presetsChanged.emit()
        return self._succeed()
