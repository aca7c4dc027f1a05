"""Qt model presenting the presets published by :class:`ActivationEngine`.

The model never changes presets itself; views call the engine's operations and the
model resets whenever the engine publishes a new snapshot.
"""

import enum
from typing import Any, Optional

from PySide6 import QtCore

from .lib import ActivationEngine, EnvPreset, Snapshot, format_env_json

IdRole = QtCore.Qt.UserRole + 1
PresetRole = QtCore.Qt.UserRole + 2


class Columns(enum.IntEnum):
    Status = 0
    Name = 1
    Url = 2


class PresetModel(QtCore.QAbstractTableModel):
    """Table model listing the engine's presets."""

    def __init__(self, engine: ActivationEngine, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent=parent)
        self._engine = engine
        self._snapshot: Snapshot = engine.snapshot()
        self._connect_signals()

    def engine(self) -> ActivationEngine:
        """Return the ActivationEngine instance."""
        return self._engine

    def _connect_signals(self) -> None:
        self._engine.snapshotChanged.connect(self._reset_model)

    @QtCore.Slot(object)
    def _reset_model(self, snapshot: Snapshot) -> None:
        self.beginResetModel()
        self._snapshot = snapshot
        self.endResetModel()

    def last_error(self) -> Optional[str]:
        return self._snapshot.last_error

    def preset(self, row: int) -> Optional[EnvPreset]:
        if 0 <= row < len(self._snapshot.presets):
            return self._snapshot.presets[row]
        return None

    def rowCount(self, parent: QtCore.QModelIndex = QtCore.QModelIndex()) -> int:
        if parent.isValid():
            return 0
        return len(self._snapshot.presets)

    def columnCount(self, parent: QtCore.QModelIndex = QtCore.QModelIndex()) -> int:
        if parent.isValid():
            return 0
        return len(Columns)

    def data(
            self,
            index: QtCore.QModelIndex,
            role: int = QtCore.Qt.DisplayRole
    ) -> Any:
        if not index.isValid():
            return None

        item = self.preset(index.row())
        if item is None:
            return None
        col = index.column()

        if role == QtCore.Qt.DisplayRole:
            if col == Columns.Status:
                return 'Active' if item.is_active else ''
            if col == Columns.Name:
                return item.name
            if col == Columns.Url:
                return item.display_url
            return None

        if role == QtCore.Qt.CheckStateRole and col == Columns.Status:
            return QtCore.Qt.Checked if item.is_active else QtCore.Qt.Unchecked

        if role == QtCore.Qt.ToolTipRole:
            return format_env_json(item.env)

        if role == IdRole:
            return item.id

        if role == PresetRole:
            return item

        return None

    def flags(self, index: QtCore.QModelIndex) -> QtCore.Qt.ItemFlag:
        """Items are selectable and enabled, never editable in place."""
        if not index.isValid():
            return QtCore.Qt.NoItemFlags
        return QtCore.Qt.ItemIsEnabled | QtCore.Qt.ItemIsSelectable

    def headerData(
            self,
            section: int,
            orientation: QtCore.Qt.Orientation,
            role: int = QtCore.Qt.DisplayRole
    ) -> Any:
        if orientation == QtCore.Qt.Horizontal and role == QtCore.Qt.DisplayRole:
            if section == Columns.Status:
                return ''
            if section == Columns.Name:
                return 'Name'
            if section == Columns.Url:
                return 'URL'
        return None
