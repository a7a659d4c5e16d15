from coordsys.cli import describe, main
from coordsys.io import save_coordinate_system
from coordsys.tests.fixtures.stub_coordinates import make_system


def _saved(tmp_path):
    path = tmp_path / 'cs.h5'
    save_coordinate_system(make_system(), path)
    return str(path)


def test_describe_lists_axes():
    lines = describe(make_system())
    assert lines[0] == '2 coordinates, 3 world axes, 3 pixel axes'
    assert len(lines) == 7
    assert lines[3].startswith("world 2: 't' [s]")


def test_pixel_conversion(tmp_path, capsys):
    assert main([_saved(tmp_path), '--pixel', '1', '1', '0']) == 0
    out = capsys.readouterr().out
    assert 'world: 100 200 1000' in out


def test_world_conversion(tmp_path, capsys):
    assert main([_saved(tmp_path), '--world', '102', '206', '1050']) == 0
    assert 'pixel: 2 3 5' in capsys.readouterr().out


def test_failures_exit_nonzero(tmp_path):
    path = _saved(tmp_path)
    assert main([path, '--field', 'missing']) == 1
    assert main([path, '--pixel', '1']) == 1
    assert main([str(tmp_path / 'nope.h5')]) == 1
