from pathlib import Path

import pytest

from play_publisher.errors import DiscoveryError, InvalidNamingError
from play_publisher.expansion import ExpansionFileInfo, classify, collect_expansion_files


@pytest.mark.parametrize(
    'filename,expected',
    [
        ('main.7.com.example.app.obb', ExpansionFileInfo('main', 7, 'com.example.app')),
        ('patch.42.com.example.app.obb', ExpansionFileInfo('patch', 42, 'com.example.app')),
        ('MAIN.3.com.Example_App.OBB', ExpansionFileInfo('main', 3, 'com.Example_App')),
        ('build/obb/main.7.com.example.app.obb', ExpansionFileInfo('main', 7, 'com.example.app')),
    ],
)
def test_classify(filename, expected):
    assert classify(filename) == expected


@pytest.mark.parametrize(
    'filename',
    [
        'badname.obb',
        'main.com.example.app.obb',
        'extra.7.com.example.app.obb',
        'main.7.com.example.app.zip',
        'main.x.a.obb',
    ],
)
def test_classify_rejects_bad_names(filename):
    with pytest.raises(InvalidNamingError, match='required naming scheme'):
        classify(filename)


def test_collect_groups_by_version_code():
    paths = [
        Path('obb/patch.42.com.example.app.obb'),
        Path('obb/main.42.com.example.app.obb'),
        Path('obb/main.41.com.example.app.obb'),
    ]
    sets = collect_expansion_files(paths, 'com.example.app', {41, 42}, False)

    assert list(sets) == [41, 42]
    assert sets[41].main == paths[2]
    assert sets[41].patch is None
    assert sets[42].main == paths[1]
    assert sets[42].get('patch') == paths[0]


def test_collect_rejects_other_application():
    with pytest.raises(InvalidNamingError, match='application ID'):
        collect_expansion_files([Path('main.42.com.other.obb')], 'com.example.app', {42}, False)


def test_collect_rejects_unknown_version_code():
    with pytest.raises(InvalidNamingError, match='41, 42'):
        collect_expansion_files([Path('main.43.com.example.app.obb')], 'com.example.app', {41, 42}, False)


def test_patch_without_main():
    paths = [Path('patch.42.com.example.app.obb')]
    with pytest.raises(DiscoveryError, match='no main expansion file'):
        collect_expansion_files(paths, 'com.example.app', {42}, False)

    # allowed when a previous main file may be reused
    sets = collect_expansion_files(paths, 'com.example.app', {42}, True)
    assert sets[42].main is None
