from dataclasses import dataclass
from pathlib import Path

import regex as re

from .errors import DiscoveryError, InvalidNamingError

TYPE_MAIN = 'main'
TYPE_PATCH = 'patch'
EXPANSION_TYPES = (TYPE_MAIN, TYPE_PATCH)

# e.g. main.42.com.example.app.obb
OBB_FILE_REGEX = re.compile(r'^(main|patch)\.(\d+)\.([._a-zA-Z0-9]+)\.obb$', re.I)


@dataclass(frozen=True)
class ExpansionFileInfo:
    type: str
    version_code: int
    application_id: str


@dataclass
class ExpansionFileSet:
    main: Path | None = None
    patch: Path | None = None

    def get(self, type_: str) -> Path | None:
        return self.main if type_ == TYPE_MAIN else self.patch


def classify(filename: str) -> ExpansionFileInfo:
    m = OBB_FILE_REGEX.match(Path(filename).name)
    if not m:
        raise InvalidNamingError(f"Expansion file '{filename}' doesn't match the required naming scheme")
    return ExpansionFileInfo(m.group(1).lower(), int(m.group(2)), m.group(3))


def collect_expansion_files(
    paths: list[Path],
    application_id: str,
    version_codes: set[int],
    use_previous_if_missing: bool,
) -> dict[int, ExpansionFileSet]:
    """
    Groups expansion files by the version code they belong to, checking that
    each one targets the application and a version code of this run.
    """
    file_sets: dict[int, ExpansionFileSet] = {}
    for path in paths:
        info = classify(path.name)
        if info.application_id != application_id:
            raise InvalidNamingError(
                f"Expansion filename '{path}' doesn't match the application ID to be uploaded: {application_id}"
            )
        if info.version_code not in version_codes:
            codes = ', '.join(str(vc) for vc in sorted(version_codes))
            raise InvalidNamingError(
                f"Expansion filename '{path}' doesn't match the versionCode of any of the file(s) to be uploaded: "
                f'{codes}'
            )

        file_set = file_sets.setdefault(info.version_code, ExpansionFileSet())
        if info.type == TYPE_MAIN:
            file_set.main = path
        else:
            file_set.patch = path

    # Google Play requires every APK with a patch file to also have a main file
    if not use_previous_if_missing:
        for file_set in file_sets.values():
            if file_set.patch and not file_set.main:
                raise DiscoveryError(
                    f"Patch expansion file '{file_set.patch.name}' was provided, but no main expansion file was "
                    'provided, and the option to reuse a pre-existing expansion file was disabled.\n'
                    'Google Play requires that each APK with a patch file also has a main file.'
                )

    return dict(sorted(file_sets.items()))
