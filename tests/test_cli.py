from unittest import mock

import pytest

import merge_mbtiles
from merge_mbtiles import main, create_arg_parser
from TileStorage import MBTilesStorage, StoreError


TILES = [(0, 0, 0, 'a'), (1, 1, 1, 'b')]
IMAGES = {'a': b'x', 'b': b'y'}


@pytest.fixture
def paths(make_store):
    return (make_store('source.mbtiles', TILES, IMAGES),
            make_store('target.mbtiles', metadata={'name': 'target'}))


def test_defaults():
    args = create_arg_parser().parse_args(['src', 'dst'])
    assert args.read_batch == 1
    assert args.write_concurrency == 1
    assert args.progress_interval == 1000
    assert args.queue_size == 0
    assert not args.update_metadata


def test_no_arguments(capsys):
    assert main([]) == 1
    assert 'usage:' in capsys.readouterr().err


@pytest.mark.parametrize('args', [
    ['only-source'],
    ['src', 'dst', '--unknown'],
    ['src', 'dst', '--read-batch', 'many'],
])
def test_usage_errors_exit_1(args, capsys):
    with pytest.raises(SystemExit) as exc:
        main(args)
    assert exc.value.code == 1
    assert 'usage:' in capsys.readouterr().err


def test_missing_file(tmp_path, paths, capsys):
    assert main([paths[0], str(tmp_path / 'missing.mbtiles')]) == 1
    assert 'does not exist' in capsys.readouterr().err


def test_bad_option_value(paths, capsys):
    assert main(list(paths) + ['--write-concurrency', '0']) == 1
    assert 'writeConcurrency' in capsys.readouterr().err


def test_success(paths, read_store, capsys):
    assert main(list(paths) + ['--read-batch', '2', '--write-concurrency', '2',
                               '--progress-interval', '1']) == 0
    out = capsys.readouterr().out
    assert out.endswith('2/2 100.0 % ETA: 0:00:00 skipped: 0\n')
    assert read_store(paths[1]) == (set(TILES), IMAGES)


def test_quiet(paths, capsys):
    assert main(list(paths) + ['--quiet']) == 0
    assert capsys.readouterr().out == ''


def test_update_metadata(paths):
    assert main(list(paths) + ['-q', '--update-metadata']) == 0
    with MBTilesStorage().open(paths[1]) as storage:
        meta = storage.metadata()
    assert meta['minzoom'] == '0'
    assert meta['maxzoom'] == '1'


def test_store_error(paths, capsys):
    with mock.patch.object(merge_mbtiles, 'merge', side_effect=StoreError('locked')):
        assert main(list(paths)) == 1
    assert 'Error: locked' in capsys.readouterr().err


def test_unexpected_error(paths, capsys):
    with mock.patch.object(merge_mbtiles, 'merge', side_effect=ValueError('boom')):
        assert main(list(paths)) == 1
    assert 'Error: boom' in capsys.readouterr().err


def test_interrupted(paths, capsys):
    with mock.patch.object(merge_mbtiles, 'merge', side_effect=KeyboardInterrupt):
        assert main(list(paths)) == 1
    assert 'Interrupted, target is partially merged' in capsys.readouterr().err
