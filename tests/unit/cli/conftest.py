"""CLI test fixtures: a complete small project on disk."""

import pytest
import yaml


@pytest.fixture
def project_dir(tmp_path, template_entries, cell_frame):
    """Template, cell table and config file for the shared dataset."""
    (tmp_path / 'inputs').mkdir()
    (tmp_path / 'inputs' / 'template.yaml').write_text(yaml.safe_dump(template_entries))
    cell_frame.to_csv(tmp_path / 'inputs' / 'cells.csv', index=False)
    return tmp_path


@pytest.fixture
def config_path(project_dir):
    """Config file whose paths are relative to the project directory."""
    path = project_dir / 'worldgen.yaml'
    path.write_text(yaml.safe_dump({
        'TEMPLATE_PATH': 'inputs/template.yaml',
        'CELL_TABLE_PATH': 'inputs/cells.csv',
        'CELL_WIDTH': 10,
        'WORLDFILE_PATH': 'out/basin.world',
        'SHOW_PROGRESS': False,
    }))
    return path
