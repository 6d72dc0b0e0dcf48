"""Unit tests for the worldfile command handlers and the CLI entry point."""

from argparse import Namespace

import pytest
import yaml

from worldgen.cli.commands import BaseCommand, WorldfileCommands
from worldgen.cli.exit_codes import ExitCode
from worldgen.main_cli import main

pytestmark = [pytest.mark.unit, pytest.mark.cli]


class TestGenerate:
    """Test ``worldgen generate``."""

    def test_writes_worldfile(self, config_path, project_dir, capsys):
        assert main(['generate', '--config', str(config_path)]) == ExitCode.SUCCESS
        worldfile = project_dir / 'out' / 'basin.world'
        assert worldfile.read_text().startswith('1\t\t\tworld_ID\n')
        assert 'Worldfile written to' in capsys.readouterr().out

    def test_existing_output_is_an_error(self, config_path, project_dir, capsys):
        assert main(['generate', '--config', str(config_path)]) == ExitCode.SUCCESS
        assert main(['generate', '--config', str(config_path)]) == ExitCode.ERROR
        assert 'already exists' in capsys.readouterr().err

    def test_overwrite_flag(self, config_path, project_dir):
        worldfile = project_dir / 'out' / 'basin.world'
        worldfile.parent.mkdir()
        worldfile.write_text('stale')
        assert main(['generate', '--config', str(config_path), '--overwrite']) == ExitCode.SUCCESS
        assert worldfile.read_text() != 'stale'

    def test_missing_config(self, tmp_path, capsys):
        assert main(['generate', '--config', str(tmp_path / 'none.yaml')]) == ExitCode.CONFIG_ERROR
        assert 'Configuration error' in capsys.readouterr().err

    def test_invalid_config(self, project_dir):
        path = project_dir / 'bad.yaml'
        path.write_text(yaml.safe_dump({'TEMPLATE_PATH': 'inputs/template.yaml'}))
        assert main(['generate', '--config', str(path)]) == ExitCode.CONFIG_ERROR

    def test_missing_rules_file(self, config_path, project_dir, capsys):
        config = yaml.safe_load(config_path.read_text())
        config['ASPATIAL_RULES_PATH'] = 'inputs/rules.yaml'
        config_path.write_text(yaml.safe_dump(config))
        assert main(['generate', '--config', str(config_path)]) == ExitCode.ERROR
        assert 'rules' in capsys.readouterr().err
        assert not (project_dir / 'out' / 'basin.world').exists()


class TestInspect:
    """Test ``worldgen inspect``."""

    def test_reports_counts_without_writing(self, config_path, project_dir, capsys):
        assert main(['inspect', '--config', str(config_path)]) == ExitCode.SUCCESS
        out = capsys.readouterr().out
        assert 'Level hierarchy:' in out
        assert 'patch' in out
        assert 'Patch mode: spatial' in out
        assert not (project_dir / 'out' / 'basin.world').exists()


class TestBaseCommand:
    """Test shared command helpers."""

    def test_config_path_from_args(self):
        assert str(BaseCommand.get_config_path(Namespace(config='my.yaml'))) == 'my.yaml'

    def test_cli_overrides(self):
        args = Namespace(overwrite=True, no_progress=True, debug=True)
        assert BaseCommand.cli_overrides(args) == {
            'OVERWRITE': True, 'SHOW_PROGRESS': False, 'LOG_LEVEL': 'DEBUG',
        }

    def test_no_overrides(self):
        assert BaseCommand.cli_overrides(Namespace()) == {}

    def test_execute_runs_generate(self, config_path, project_dir):
        args = Namespace(config=str(config_path))
        assert WorldfileCommands.execute(args) == ExitCode.SUCCESS
        assert (project_dir / 'out' / 'basin.world').exists()
