# tests/test_engine.py
"""
Unit-tests for ClaudeCodeSwitch.presets.lib.ActivationEngine
(covers bootstrap, activation ordering, add/delete/update and the published snapshot).

Run with:
    python -m unittest tests.test_engine
"""
import copy
import pathlib
import random
from typing import List
from unittest.mock import patch

from ClaudeCodeSwitch.presets.lib import (
    DEFAULT_PRESET_NAME,
    ActivationEngine,
    EnvPreset,
    Snapshot,
)
from ClaudeCodeSwitch.settings import lib
from ClaudeCodeSwitch.ui.actions import signals
from tests.base import SETTINGS_FIXTURE, BaseTestCase

P1_ENV = {'ANTHROPIC_BASE_URL': 'https://one', 'ANTHROPIC_AUTH_TOKEN': 'sk-one'}
P2_ENV = {'ANTHROPIC_BASE_URL': 'https://two', 'ANTHROPIC_MODEL': 'claude-sonnet'}


class EngineTestCase(BaseTestCase):
    """Starts every test with settings.json from the fixture and no presets file."""

    def setUp(self) -> None:
        super().setUp()
        self.write_settings(SETTINGS_FIXTURE)

    def make_engine(self) -> ActivationEngine:
        return ActivationEngine(self.config_paths)

    def make_two_presets(self) -> tuple[ActivationEngine, str, str]:
        """P1 active and in settings.json, P2 inactive."""
        self.write_presets([
            {'id': 'P1', 'name': 'One', 'env': P1_ENV, 'isActive': True},
            {'id': 'P2', 'name': 'Two', 'env': P2_ENV, 'isActive': False},
        ])
        settings = copy.deepcopy(SETTINGS_FIXTURE)
        settings['env'] = dict(P1_ENV)
        self.write_settings(settings)
        return self.make_engine(), 'P1', 'P2'

    def active_ids(self, engine: ActivationEngine) -> List[str]:
        return [p.id for p in engine.presets if p.is_active]


class BootstrapTests(EngineTestCase):
    def test_scenario_a_creates_default(self):
        self.write_settings({'env': {'ANTHROPIC_BASE_URL': 'https://a'}})
        self.write_presets([])
        engine = self.make_engine()

        self.assertEqual(len(engine.presets), 1)
        preset = engine.presets[0]
        self.assertEqual(preset.name, DEFAULT_PRESET_NAME)
        self.assertEqual(preset.env, {'ANTHROPIC_BASE_URL': 'https://a'})
        self.assertTrue(preset.is_active)
        self.assertIsNone(engine.last_error)
        self.assertEqual(self.read_presets(), [preset.to_dict()])

    def test_bootstrap_inserts_default_first(self):
        self.write_presets([{'id': 'X', 'name': 'Other', 'env': {}, 'isActive': False}])
        engine = self.make_engine()
        self.assertEqual([p.name for p in engine.presets], [DEFAULT_PRESET_NAME, 'Other'])

    def test_bootstrap_refreshes_existing_default(self):
        self.write_presets([
            {'id': 'X', 'name': 'Other', 'env': {}, 'isActive': False},
            {'id': 'D', 'name': DEFAULT_PRESET_NAME, 'env': {'OLD': '1'}, 'isActive': False},
        ])
        engine = self.make_engine()
        self.assertEqual(len(engine.presets), 2)
        default = engine.store.get('D')
        self.assertEqual(default.env, SETTINGS_FIXTURE['env'])
        self.assertTrue(default.is_active)
        self.assertEqual(self.active_ids(engine), ['D'])

    def test_bootstrap_is_idempotent(self):
        self.make_engine()
        first = self.read_presets()
        engine = self.make_engine()
        self.assertEqual(self.read_presets(), first)

        self.assertTrue(engine.bootstrap())
        self.assertEqual(self.read_presets(), first)
        self.assertEqual([p.to_dict() for p in engine.presets], first)

    def test_bootstrap_skipped_when_a_preset_is_active(self):
        engine, p1, _ = self.make_two_presets()
        self.assertEqual([p.name for p in engine.presets], ['One', 'Two'])
        self.assertEqual(self.active_ids(engine), [p1])

    def test_bootstrap_skipped_without_env(self):
        self.write_settings({'model': 'opus'})
        engine = self.make_engine()
        self.assertEqual(engine.presets, ())
        self.assertIsNone(engine.last_error)
        self.assertFalse(self.config_paths.presets_path.exists())

    def test_bootstrap_reports_unreadable_settings(self):
        self.config_paths.settings_path.unlink()
        engine = self.make_engine()
        self.assertEqual(engine.presets, ())
        self.assertIn('Cannot read settings.json', engine.last_error)

    def test_bootstrap_reports_invalid_settings(self):
        self.config_paths.settings_path.write_text('{oops', encoding='utf-8')
        self.write_presets([{'id': 'X', 'name': 'Other', 'env': {}, 'isActive': False}])
        engine = self.make_engine()
        self.assertEqual([p.name for p in engine.presets], ['Other'])
        self.assertIn('Failed to parse settings.json', engine.last_error)

    def test_reload_picks_up_external_changes(self):
        engine, p1, _ = self.make_two_presets()
        self.write_presets([{'id': 'N', 'name': 'New', 'env': {}, 'isActive': False}])
        reloaded: list[bool] = []
        engine.presetsReloaded.connect(lambda: reloaded.append(True))

        self.assertTrue(engine.reload())
        self.assertTrue(reloaded)
        self.assertEqual([p.name for p in engine.presets], [DEFAULT_PRESET_NAME, 'New'])


class ActivateTests(EngineTestCase):
    def test_scenario_b_switches_active_preset(self):
        engine, p1, p2 = self.make_two_presets()
        before = self.read_settings()

        self.assertTrue(engine.activate(p2))

        self.assertFalse(engine.store.get(p1).is_active)
        self.assertTrue(engine.store.get(p2).is_active)
        after = self.read_settings()
        self.assertEqual(after['env'], P2_ENV)
        del before['env'], after['env']
        self.assertEqual(after, before)
        self.assertEqual([p['isActive'] for p in self.read_presets()], [False, True])
        self.assertIsNone(engine.last_error)

    def test_scenario_c_write_failure_keeps_flags(self):
        engine, p1, p2 = self.make_two_presets()
        presets_before = self.read_presets()
        settings_before = self.config_paths.settings_path.read_bytes()

        with patch.object(pathlib.Path, 'replace', side_effect=OSError('read-only file system')):
            self.assertFalse(engine.activate(p2))

        self.assertEqual(self.active_ids(engine), [p1])
        self.assertEqual(self.read_presets(), presets_before)
        self.assertEqual(self.config_paths.settings_path.read_bytes(), settings_before)
        self.assertIn('Failed to write settings.json', engine.last_error)

    def test_read_failure_keeps_flags(self):
        engine, p1, p2 = self.make_two_presets()
        self.config_paths.settings_path.write_text('[]', encoding='utf-8')

        self.assertFalse(engine.activate(p2))

        self.assertEqual(self.active_ids(engine), [p1])
        self.assertEqual(self.config_paths.settings_path.read_text(encoding='utf-8'), '[]')
        self.assertIn('Failed to parse settings.json', engine.last_error)

    def test_flags_move_only_after_write(self):
        engine, p1, p2 = self.make_two_presets()
        seen: list[list[str]] = []
        original_write = lib.SettingsFile.write

        def spy(settings_file, settings):
            seen.append(self.active_ids(engine))
            original_write(settings_file, settings)
            seen.append(self.active_ids(engine))

        with patch.object(lib.SettingsFile, 'write', spy):
            self.assertTrue(engine.activate(p2))

        self.assertEqual(seen, [[p1], [p1]])
        self.assertEqual(self.active_ids(engine), [p2])

    def test_presets_save_failure_after_write(self):
        engine, p1, p2 = self.make_two_presets()

        def fail_save():
            from ClaudeCodeSwitch.status import status
            raise status.PresetsWriteFailureException('disk full')

        with patch.object(engine.store, 'save', side_effect=fail_save):
            self.assertFalse(engine.activate(p2))

        self.assertEqual(self.read_settings()['env'], P2_ENV)
        self.assertEqual(self.active_ids(engine), [p1])
        self.assertIn('Failed to save the presets', engine.last_error)

    def test_activate_unknown_id(self):
        engine, p1, _ = self.make_two_presets()
        settings_before = self.config_paths.settings_path.read_bytes()
        self.assertFalse(engine.activate('missing'))
        self.assertIn('Could not find the preset', engine.last_error)
        self.assertEqual(self.active_ids(engine), [p1])
        self.assertEqual(self.config_paths.settings_path.read_bytes(), settings_before)

    def test_activate_same_preset_twice(self):
        engine, p1, _ = self.make_two_presets()
        self.assertTrue(engine.activate(p1))
        self.assertTrue(engine.activate(p1))
        self.assertEqual(self.active_ids(engine), [p1])

    def test_success_clears_previous_error(self):
        engine, _, p2 = self.make_two_presets()
        engine.activate('missing')
        self.assertIsNotNone(engine.last_error)
        engine.activate(p2)
        self.assertIsNone(engine.last_error)

    def test_latest_error_overwrites_previous(self):
        engine, _, p2 = self.make_two_presets()
        engine.activate('missing')
        self.config_paths.settings_path.unlink()
        engine.activate(p2)
        self.assertIn('Cannot read settings.json', engine.last_error)
        self.assertNotIn('Could not find the preset', engine.last_error)

    def test_activation_signals(self):
        engine, _, p2 = self.make_two_presets()
        rows: list[int] = []
        names: list[str] = []

        def _on_activated(name: str) -> None:
            names.append(name)

        engine.presetActivated.connect(rows.append)
        signals.presetActivated.connect(_on_activated)
        try:
            engine.activate(p2)
        finally:
            signals.presetActivated.disconnect(_on_activated)

        self.assertEqual(rows, [1])
        self.assertEqual(names, ['Two'])


class EditTests(EngineTestCase):
    def test_add_appends_inactive(self):
        engine, p1, _ = self.make_two_presets()
        preset = EnvPreset(name='Three', env={'A': 'b'}, is_active=True)

        self.assertTrue(engine.add(preset))

        self.assertEqual([p.name for p in engine.presets], ['One', 'Two', 'Three'])
        self.assertFalse(engine.store.get(preset.id).is_active)
        self.assertEqual(self.active_ids(engine), [p1])
        self.assertEqual(self.read_presets()[-1]['name'], 'Three')

    def test_add_does_not_touch_settings(self):
        engine, _, _ = self.make_two_presets()
        before = self.config_paths.settings_path.read_bytes()
        engine.add(EnvPreset(name='Three'))
        self.assertEqual(self.config_paths.settings_path.read_bytes(), before)

    def test_add_rejects_invalid(self):
        engine, _, _ = self.make_two_presets()
        for preset in (
                EnvPreset(name=''),
                EnvPreset(name='   '),
                EnvPreset(name='Bad', env={'A': 1}),  # type: ignore[dict-item]
                EnvPreset(name='Dup', id='P1'),
        ):
            self.assertFalse(engine.add(preset), f'Expected add to fail for {preset!r}')
            self.assertIn('The preset is incomplete', engine.last_error)
        self.assertEqual(len(engine.presets), 2)

    def test_add_keeps_callers_object_detached(self):
        engine, _, _ = self.make_two_presets()
        preset = EnvPreset(name='Three', env={'A': 'b'})
        engine.add(preset)
        preset.env['A'] = 'changed'
        self.assertEqual(engine.store.get(preset.id).env, {'A': 'b'})

    def test_scenario_d_delete_active(self):
        engine, p1, p2 = self.make_two_presets()
        before = self.config_paths.settings_path.read_bytes()

        self.assertTrue(engine.delete(p1))

        self.assertEqual([p.id for p in engine.presets], [p2])
        self.assertEqual(self.active_ids(engine), [])
        self.assertEqual(self.config_paths.settings_path.read_bytes(), before)
        self.assertEqual([p['id'] for p in self.read_presets()], [p2])

    def test_delete_unknown(self):
        engine, _, _ = self.make_two_presets()
        self.assertFalse(engine.delete('missing'))
        self.assertEqual(len(engine.presets), 2)

    def test_delete_save_failure_keeps_preset(self):
        engine, p1, _ = self.make_two_presets()
        with patch.object(pathlib.Path, 'replace', side_effect=OSError('disk full')):
            self.assertFalse(engine.delete(p1))
        self.assertIsNotNone(engine.store.get(p1))
        self.assertEqual(len(self.read_presets()), 2)

    def test_update_active_does_not_propagate(self):
        engine, p1, _ = self.make_two_presets()
        before = self.config_paths.settings_path.read_bytes()

        edited = EnvPreset(id=p1, name='One (edited)', env={'ANTHROPIC_BASE_URL': 'https://edited'})
        self.assertTrue(engine.update(edited))

        stored = engine.store.get(p1)
        self.assertEqual(stored.name, 'One (edited)')
        self.assertEqual(stored.env, {'ANTHROPIC_BASE_URL': 'https://edited'})
        self.assertTrue(stored.is_active)
        self.assertEqual(self.config_paths.settings_path.read_bytes(), before)

        self.assertTrue(engine.activate(p1))
        self.assertEqual(self.read_settings()['env'], {'ANTHROPIC_BASE_URL': 'https://edited'})

    def test_update_cannot_change_active_flag(self):
        engine, p1, p2 = self.make_two_presets()
        engine.update(EnvPreset(id=p2, name='Two', env=P2_ENV, is_active=True))
        self.assertEqual(self.active_ids(engine), [p1])

    def test_update_unknown_or_invalid(self):
        engine, p1, _ = self.make_two_presets()
        self.assertFalse(engine.update(EnvPreset(id='missing', name='X')))
        self.assertIn('Could not find the preset', engine.last_error)
        self.assertFalse(engine.update(EnvPreset(id=p1, name='')))
        self.assertEqual(engine.store.get(p1).name, 'One')

    def test_current_env(self):
        engine, _, _ = self.make_two_presets()
        self.assertEqual(engine.current_env(), P1_ENV)
        self.write_settings({'model': 'opus'})
        self.assertIsNone(engine.current_env())
        self.config_paths.settings_path.unlink()
        self.assertIsNone(engine.current_env())
        self.assertIn('Cannot read settings.json', engine.last_error)


class SnapshotTests(EngineTestCase):
    def test_snapshot_is_detached(self):
        engine, p1, _ = self.make_two_presets()
        snapshot = engine.snapshot()
        self.assertIsInstance(snapshot, Snapshot)
        snapshot.presets[0].name = 'Changed'
        snapshot.presets[0].env.clear()
        self.assertEqual(engine.store.get(p1).name, 'One')
        self.assertEqual(engine.store.get(p1).env, P1_ENV)
        with self.assertRaises(AttributeError):
            snapshot.last_error = 'x'  # type: ignore[misc]

    def test_snapshot_published_after_each_operation(self):
        engine, p1, p2 = self.make_two_presets()
        published: list[Snapshot] = []
        engine.snapshotChanged.connect(published.append)

        engine.activate(p2)
        engine.add(EnvPreset(name='Three'))
        engine.update(EnvPreset(id=p1, name='Uno', env=P1_ENV))
        engine.delete(p1)
        engine.activate('missing')

        self.assertEqual(len(published), 5)
        self.assertEqual(published[0].active.id, p2)
        self.assertEqual([p.name for p in published[3].presets], ['Two', 'Three'])
        self.assertIsNone(published[3].last_error)
        self.assertIn('Could not find the preset', published[4].last_error)

    def test_clear_error(self):
        engine, _, _ = self.make_two_presets()
        engine.activate('missing')
        engine.clear_error()
        self.assertIsNone(engine.snapshot().last_error)

    def test_at_most_one_active_after_random_operations(self):
        engine, _, _ = self.make_two_presets()
        rng = random.Random(1234)
        for i in range(200):
            ids = [p.id for p in engine.presets]
            op = rng.choice(('activate', 'add', 'delete', 'update', 'bootstrap'))
            if op == 'activate' and ids:
                engine.activate(rng.choice(ids))
            elif op == 'add':
                engine.add(EnvPreset(name=f'P{i}', env={'ANTHROPIC_BASE_URL': f'https://{i}'}))
            elif op == 'delete' and ids:
                engine.delete(rng.choice(ids))
            elif op == 'update' and ids:
                engine.update(EnvPreset(id=rng.choice(ids), name=f'U{i}', is_active=True))
            elif op == 'bootstrap':
                engine.bootstrap()
            self.assertLessEqual(len(self.active_ids(engine)), 1)
            on_disk = [p['isActive'] for p in self.read_presets()]
            self.assertLessEqual(on_disk.count(True), 1)
