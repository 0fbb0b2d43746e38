import pytest

from play_publisher.config import PublishConfig
from play_publisher.discovery import discover
from play_publisher.errors import DiscoveryError, InvalidNamingError
from play_publisher.metadata import AppFileFormat
from tests.fakes import FakeMetadataReader, FakePublisherClient, aab, apk, write


def config(**kwargs) -> PublishConfig:
    kwargs.setdefault('files_pattern', '**/*.apk, **/*.aab')
    return PublishConfig(**kwargs)


def test_discovers_single_apk(tmp_path):
    write(tmp_path / 'app/build/outputs/apk/release/app-release.apk')
    reader = FakeMetadataReader({'app-release.apk': apk(version_code=42)})

    plan = discover(tmp_path, config(), reader)

    assert plan.application_id == 'com.example.app'
    assert [c.path for c in plan.candidates] == [tmp_path / 'app/build/outputs/apk/release/app-release.apk']
    assert plan.version_codes == {42}
    assert plan.expansion_files == {}


def test_default_pattern_finds_build_outputs(tmp_path):
    write(tmp_path / 'app/build/outputs/bundle/release/app-release.aab')
    write(tmp_path / 'app/src/main/other.aab')
    reader = FakeMetadataReader({'app-release.aab': aab(), 'other.aab': aab()})

    plan = discover(tmp_path, PublishConfig(), reader)

    assert [c.path.name for c in plan.candidates] == ['app-release.aab']


def test_no_matching_files(tmp_path):
    with pytest.raises(DiscoveryError, match="pattern '.*' could be found"):
        discover(tmp_path, config(), FakeMetadataReader({}))


def test_unreadable_file(tmp_path):
    write(tmp_path / 'broken.apk')
    with pytest.raises(DiscoveryError, match='does not appear to be a valid AAB or APK'):
        discover(tmp_path, config(), FakeMetadataReader({}))


def test_inconsistent_application_ids_fail_before_any_remote_call(tmp_path):
    write(tmp_path / 'a.apk')
    write(tmp_path / 'b.apk')
    reader = FakeMetadataReader({'a.apk': apk('com.example.a', 1), 'b.apk': apk('com.example.b', 2)})
    client = FakePublisherClient()

    with pytest.raises(DiscoveryError) as exc:
        discover(tmp_path, config(), reader)

    assert exc.value.details == ['com.example.a', 'com.example.b']
    assert client.calls == []


def test_bundles_preferred_over_apks(tmp_path, caplog):
    write(tmp_path / 'out/app.aab')
    write(tmp_path / 'out/app.apk')
    reader = FakeMetadataReader({'app.aab': aab(version_code=43), 'app.apk': apk(version_code=42)})

    plan = discover(tmp_path, config(), reader)

    assert [c.format for c in plan.candidates] == [AppFileFormat.BUNDLE]
    assert plan.version_codes == {43}
    assert 'only the AAB files will be uploaded' in caplog.text


# ############################################################
# ##################### Mapping files ########################
# ############################################################
def test_single_mapping_file_applies_to_all(tmp_path):
    write(tmp_path / 'out/x86/app.apk')
    write(tmp_path / 'out/arm/app.apk', b'other')
    write(tmp_path / 'mapping/mapping.txt')
    reader = FakeMetadataReader({'app.apk': apk()})

    plan = discover(tmp_path, config(deobfuscation_files_pattern='mapping/*.txt'), reader)

    assert [c.mapping_file for c in plan.candidates] == [tmp_path / 'mapping/mapping.txt'] * 2


def test_mapping_files_paired_by_sorted_path(tmp_path):
    write(tmp_path / 'build/outputs/apk/free/release/app.apk')
    write(tmp_path / 'build/outputs/apk/paid/release/app.apk', b'paid')
    write(tmp_path / 'build/outputs/mapping/paid/release/mapping.txt')
    write(tmp_path / 'build/outputs/mapping/free/release/mapping.txt')
    reader = FakeMetadataReader({'app.apk': apk()})

    plan = discover(tmp_path, config(deobfuscation_files_pattern='**/mapping/**/mapping.txt'), reader)

    pairs = {c.path.parent.parent.name: c.mapping_file.parent.parent.name for c in plan.candidates}
    assert pairs == {'free': 'free', 'paid': 'paid'}


def test_mapping_file_count_mismatch(tmp_path):
    for flavor in ('a', 'b', 'c'):
        write(tmp_path / f'apk/{flavor}/app.apk', flavor.encode())
    write(tmp_path / 'mapping/a/mapping.txt')
    write(tmp_path / 'mapping/b/mapping.txt')
    reader = FakeMetadataReader({'app.apk': apk()})

    with pytest.raises(DiscoveryError, match='3 AAB/APKs to be uploaded, but only 2'):
        discover(tmp_path, config(deobfuscation_files_pattern='mapping/**/*.txt'), reader)


def test_no_mapping_files(tmp_path):
    write(tmp_path / 'app.apk')
    reader = FakeMetadataReader({'app.apk': apk()})

    with pytest.raises(DiscoveryError, match='No obfuscation mapping files'):
        discover(tmp_path, config(deobfuscation_files_pattern='*.txt'), reader)


# ############################################################
# #################### Expansion files #######################
# ############################################################
def test_expansion_files_collected(tmp_path):
    write(tmp_path / 'app.apk')
    write(tmp_path / 'obb/main.42.com.example.app.obb')
    reader = FakeMetadataReader({'app.apk': apk(version_code=42)})

    plan = discover(tmp_path, config(expansion_files_pattern='obb/*.obb'), reader)

    assert plan.expansion_files[42].main == tmp_path / 'obb/main.42.com.example.app.obb'


def test_expansion_file_for_other_version_code(tmp_path):
    write(tmp_path / 'app.apk')
    write(tmp_path / 'obb/main.41.com.example.app.obb')
    reader = FakeMetadataReader({'app.apk': apk(version_code=42)})

    with pytest.raises(InvalidNamingError):
        discover(tmp_path, config(expansion_files_pattern='obb/*.obb'), reader)
